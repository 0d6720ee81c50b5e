import os
import tempfile
from dataclasses import dataclass
from typing import Optional


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def certificate_artifact_key(event_id, certificate_number: str, extension: str) -> str:
    """Storage key for an artifact: ``certificates/{event_id}/{number}.{ext}``."""
    safe_number = certificate_number.replace("/", "_").replace(os.sep, "_")
    return f"certificates/{event_id}/{safe_number}.{extension.lstrip('.')}"


@dataclass
class LocalArtifactStorage:
    """Stores certificate artifacts under ``root`` (normally ``SITE_ROOT``).

    ``put`` returns the storage reference recorded on the certificate; the
    reference is the key relative to ``root``.
    """

    root: str

    def _abs_path(self, ref: str) -> str:
        root = os.path.realpath(self.root)
        path = os.path.realpath(os.path.join(root, ref))
        if path != root and not path.startswith(f"{root}{os.sep}"):
            raise ValueError(f"artifact reference escapes storage root: {ref}")
        return path

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self._abs_path(key)
        write_atomic(path, data)
        os.chmod(path, 0o644)
        return key

    def exists(self, ref: str) -> bool:
        return os.path.exists(self._abs_path(ref))

    def open(self, ref: str) -> bytes:
        with open(self._abs_path(ref), "rb") as f:
            return f.read()

    def path_for(self, ref: str) -> str:
        return self._abs_path(ref)

    def discard(self, ref: str) -> None:
        try:
            os.remove(self._abs_path(ref))
        except FileNotFoundError:
            pass
