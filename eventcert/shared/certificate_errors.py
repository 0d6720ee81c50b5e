from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from ..models import Certificate
    from .eligibility import Eligibility


class CertificateError(RuntimeError):
    """Base class for certificate engine failures."""


class AssetUnavailable(CertificateError):
    """Raised when an image or font cannot be fetched or decoded.

    Always recovered inside the asset resolver; callers only ever see ``None``
    or a fallback handle.
    """

    def __init__(self, ref: str, reason: str):
        super().__init__(f"{ref}: {reason}")
        self.ref = ref
        self.reason = reason


class AllocationConflict(CertificateError):
    """Raised when another writer claimed the same certificate sequence."""


class RenderFailure(CertificateError):
    """Raised when either renderer fails to produce its artifact."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend} render failed: {message}")
        self.backend = backend


class UploadFailure(CertificateError):
    """Raised when the storage collaborator rejects an artifact."""


class DuplicateCertificate(CertificateError):
    """Raised by the persistence step when (user, event) already has a record."""

    def __init__(self, existing: "Certificate | None" = None):
        super().__init__("Certificate already exists for this participant and event.")
        self.existing = existing


class CertificateEligibilityError(CertificateError):
    """Raised when certificate generation is blocked by eligibility rules."""

    def __init__(self, eligibility: "Eligibility"):
        super().__init__(eligibility.message)
        self.eligibility = eligibility
