"""Font and image resolution shared by both certificate renderers.

One :class:`AssetResolver` belongs to exactly one generation pass. Every
reference is fetched at most once per resolver; the decoded result (or the
failure) is cached and handed to the vector and raster renderers alike.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from dataclasses import dataclass, field
from io import BytesIO
from typing import Iterable, Optional, Sequence
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image, ImageFont
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfbase.ttfonts import TTFont

from .certificate_errors import AssetUnavailable

logger = logging.getLogger("eventcert.assets")

DEFAULT_ASSETS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "assets")
DEFAULT_FETCH_TIMEOUT = 10.0
LAST_RESORT_FACE = "Helvetica-Bold"

_SERIF_KEYWORDS = (
    "times",
    "serif",
    "garamond",
    "baskerville",
    "georgia",
    "playfair",
    "lora",
    "merriweather",
    "crimson",
)
_MONO_KEYWORDS = ("courier", "mono", "consolas", "menlo")

# Raster equivalents of the reportlab base-14 faces.
_FONT_PATHS = {
    "Helvetica": "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "Helvetica-Bold": "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "Times-Roman": "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
    "Times-Bold": "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf",
    "Courier": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "Courier-Bold": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf",
}
_DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"


@dataclass(frozen=True)
class FontSource:
    pdf_name: str
    bundled: str
    urls: tuple[str, ...]


DECORATIVE_FONTS = {
    "montecarlo": FontSource(
        pdf_name="MonteCarlo",
        bundled="fonts/MonteCarlo-Regular.ttf",
        urls=(
            "https://fonts.gstatic.com/s/montecarlo/v1/MonteCarlo-Regular.ttf",
            "https://cdn.jsdelivr.net/gh/google/fonts@main/ofl/montecarlo/MonteCarlo-Regular.ttf",
            "https://raw.githubusercontent.com/google/fonts/main/ofl/montecarlo/MonteCarlo-Regular.ttf",
        ),
    ),
}


def primary_family(family: str) -> str:
    """First entry of a CSS-style family list, unquoted and lowercased."""
    first = (family or "").split(",", 1)[0]
    return first.strip().strip("'\"").strip().lower()


def standard_face(family: str, bold: bool = False) -> str:
    """Map a CSS-style family to a reportlab base-14 face name."""
    lowered = (family or "").lower()
    if any(keyword in lowered for keyword in _MONO_KEYWORDS):
        return "Courier-Bold" if bold else "Courier"
    if any(keyword in lowered for keyword in _SERIF_KEYWORDS):
        return "Times-Bold" if bold else "Times-Roman"
    return "Helvetica-Bold" if bold else "Helvetica"


def _safe_asset_path(assets_dir: str, candidate: Optional[str]) -> Optional[str]:
    raw = (candidate or "").strip()
    if not raw:
        return None
    assets_root = os.path.realpath(assets_dir)
    if os.path.isabs(raw):
        resolved = os.path.realpath(raw)
        if resolved.startswith(f"{assets_root}{os.sep}"):
            return resolved
        # web-root style references such as "/fonts/x.ttf"
        raw = raw.lstrip("/")
    resolved = os.path.realpath(os.path.join(assets_root, raw))
    if resolved.startswith(f"{assets_root}{os.sep}"):
        return resolved
    return None


def _decode_data_uri(ref: str) -> bytes:
    try:
        header, payload = ref[5:].split(",", 1)
    except ValueError as exc:
        raise AssetUnavailable(ref[:48], "malformed data URI") from exc
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except ValueError as exc:
            raise AssetUnavailable(ref[:48], "invalid base64 payload") from exc
    return unquote_to_bytes(payload)


def _is_remote(ref: str) -> bool:
    return ref.startswith("http://") or ref.startswith("https://")


@dataclass(frozen=True, eq=False)
class ImageHandle:
    """Decoded image usable by both backends."""

    ref: str
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def reader(self) -> ImageReader:
        return ImageReader(self.image)


@dataclass(frozen=True, eq=False)
class FontHandle:
    """A font that both backends can draw with.

    ``pdf_name`` is registered with reportlab; the raster side loads either
    the downloaded TrueType bytes or the DejaVu equivalent of the face.
    """

    requested: str
    pdf_name: str
    data: Optional[bytes] = None
    raster_path: Optional[str] = None
    degraded: bool = False
    _raster_cache: dict = field(default_factory=dict, repr=False, compare=False)

    def pdf_width(self, text: str, size: float) -> float:
        return stringWidth(text, self.pdf_name, size)

    def raster_font(self, size_px: float) -> ImageFont.FreeTypeFont:
        size = max(1, int(round(size_px)))
        cached = self._raster_cache.get(size)
        if cached is not None:
            return cached
        font = None
        if self.data is not None:
            font = ImageFont.truetype(BytesIO(self.data), size)
        elif self.raster_path and os.path.exists(self.raster_path):
            try:
                font = ImageFont.truetype(self.raster_path, size)
            except OSError:
                font = None
        if font is None:
            font = ImageFont.load_default(size)
        self._raster_cache[size] = font
        return font


def _standard_handle(requested: str, face: str, degraded: bool = False) -> FontHandle:
    return FontHandle(
        requested=requested,
        pdf_name=face,
        raster_path=_FONT_PATHS.get(face, _DEFAULT_FONT_PATH),
        degraded=degraded,
    )


class AssetResolver:
    """Fetches, decodes and caches the assets of one generation pass."""

    def __init__(
        self,
        assets_dir: Optional[str] = None,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.assets_dir = assets_dir or DEFAULT_ASSETS_DIR
        self.timeout = timeout
        self._transport = transport
        self._raw: dict[str, Optional[bytes]] = {}
        self._images: dict[str, Optional[ImageHandle]] = {}
        self._fonts: dict[tuple[str, bool], FontHandle] = {}
        self._font_fetches: dict[str, tuple] = {}
        self.warnings: list[str] = []

    # --- fetching -----------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _fetch_one(self, client: httpx.AsyncClient, ref: str) -> bytes:
        if ref.startswith("data:"):
            return _decode_data_uri(ref)
        if _is_remote(ref):
            try:
                response = await client.get(ref)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                raise AssetUnavailable(ref, "timeout") from exc
            except httpx.HTTPStatusError as exc:
                raise AssetUnavailable(ref, f"HTTP {exc.response.status_code}") from exc
            except httpx.RequestError as exc:
                raise AssetUnavailable(ref, f"request failed: {exc}") from exc
            return response.content
        path = _safe_asset_path(self.assets_dir, ref)
        if not path:
            raise AssetUnavailable(ref, "outside assets directory")
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as exc:
            raise AssetUnavailable(ref, f"unreadable: {exc.strerror or exc}") from exc

    async def _fetch_many(self, refs: Sequence[str]) -> list[object]:
        async with self._client() as client:
            return await asyncio.gather(
                *(self._fetch_one(client, ref) for ref in refs),
                return_exceptions=True,
            )

    async def _fetch_first(self, refs: Sequence[str]) -> tuple[Optional[str], Optional[bytes], list[str]]:
        """Try ``refs`` in order; return the first that loads."""
        reasons: list[str] = []
        async with self._client() as client:
            for ref in refs:
                try:
                    data = await self._fetch_one(client, ref)
                except AssetUnavailable as exc:
                    reasons.append(str(exc))
                    continue
                if data:
                    return ref, data, reasons
                reasons.append(f"{ref}: empty body")
        return None, None, reasons

    def _warn(self, message: str) -> None:
        self.warnings.append(message)

    # --- images -------------------------------------------------------------

    def _decode_image(self, ref: str, data: Optional[bytes]) -> Optional[ImageHandle]:
        if data is None:
            return None
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                decoded = img.convert("RGBA")
        except Exception as exc:  # Pillow raises several unrelated types
            reason = f"decode failed: {exc.__class__.__name__}"
            logger.warning("[CERT-ASSET] %s (%s)", ref[:120], reason)
            self._warn(f"Image unavailable: {ref[:120]} ({reason})")
            return None
        return ImageHandle(ref=ref, image=decoded)

    def _store_fetch(self, ref: str, result: object) -> None:
        if isinstance(result, AssetUnavailable):
            logger.warning("[CERT-ASSET] %s (%s)", ref[:120], result.reason)
            self._warn(f"Image unavailable: {ref[:120]} ({result.reason})")
            self._raw[ref] = None
        elif isinstance(result, BaseException):
            logger.warning("[CERT-ASSET] %s (%s)", ref[:120], result)
            self._warn(f"Image unavailable: {ref[:120]}")
            self._raw[ref] = None
        else:
            self._raw[ref] = result  # type: ignore[assignment]
        self._images[ref] = self._decode_image(ref, self._raw[ref])

    def resolve_image(self, url: Optional[str]) -> Optional[ImageHandle]:
        """Return the decoded image, or ``None`` when it cannot be used."""
        if not url:
            return None
        if url not in self._images:
            (result,) = asyncio.run(self._fetch_many([url]))
            self._store_fetch(url, result)
        return self._images[url]

    # --- fonts --------------------------------------------------------------

    def _register_downloaded(self, source: FontSource, data: bytes) -> None:
        if source.pdf_name in pdfmetrics.getRegisteredFontNames():
            return
        pdfmetrics.registerFont(TTFont(source.pdf_name, BytesIO(data)))

    def _decorative_sources(self, source: FontSource) -> list[str]:
        return [source.bundled, *source.urls]

    def _load_decorative(
        self, family: str, source: FontSource
    ) -> tuple[Optional[FontHandle], str]:
        fetched = self._font_fetches.get(source.pdf_name)
        if fetched is None:
            fetched = asyncio.run(self._fetch_first(self._decorative_sources(source)))
            self._font_fetches[source.pdf_name] = fetched
        used_ref, data, reasons = fetched
        if data is None:
            return None, "; ".join(reasons) or "no source available"
        try:
            self._register_downloaded(source, data)
            ImageFont.truetype(BytesIO(data), 12)
        except Exception as exc:  # reportlab and FreeType raise assorted types
            return None, f"{used_ref}: decode failed ({exc.__class__.__name__})"
        return FontHandle(requested=family, pdf_name=source.pdf_name, data=data), ""

    def resolve_font(
        self,
        family: str,
        fallback_chain: Optional[Iterable[str]] = None,
        bold: bool = False,
    ) -> FontHandle:
        """Return a usable font for ``family``; never fails.

        Decorative families with a known source are fetched (bundled file
        first, then the public mirrors). When that fails the first face of
        ``fallback_chain`` that reportlab knows is used, ending at
        Helvetica-Bold. Other families map onto the standard faces.
        """

        key = (family, bold)
        if key in self._fonts:
            return self._fonts[key]
        source = DECORATIVE_FONTS.get(primary_family(family))
        if source is None:
            handle = _standard_handle(family, standard_face(family, bold))
            self._fonts[key] = handle
            return handle

        handle, reason = self._load_decorative(family, source)
        if handle is None:
            chain = list(fallback_chain or (standard_face(family, True),))
            chain.append(LAST_RESORT_FACE)
            registered = set(pdfmetrics.getRegisteredFontNames()) | set(_FONT_PATHS)
            used = next((face for face in chain if face in registered), LAST_RESORT_FACE)
            logger.warning("[CERT-FONT] %s→%s (%s)", family, used, reason)
            self._warn(f"Font {primary_family(family)} unavailable, using {used}")
            handle = _standard_handle(family, used, degraded=True)
        self._fonts[key] = handle
        return handle

    # --- whole-layout prefetch ---------------------------------------------

    async def _gather(self, image_refs: Sequence[str], fonts: Sequence[FontSource]):
        async with self._client() as client:
            image_results = asyncio.gather(
                *(self._fetch_one(client, ref) for ref in image_refs),
                return_exceptions=True,
            )
            font_results = asyncio.gather(
                *(self._fetch_first(self._decorative_sources(src)) for src in fonts),
                return_exceptions=True,
            )
            return await asyncio.gather(image_results, font_results)

    def prefetch(self, layout) -> "ResolvedAssets":
        """Fetch every image and decorative font of ``layout`` concurrently.

        Returns once every fetch has finished, so nothing is drawn against an
        unresolved asset.
        """

        image_refs = [ref for ref in layout.image_urls() if ref not in self._images]
        families = layout.font_families()
        pending: dict[str, FontSource] = {}
        for family, _bold in families:
            source = DECORATIVE_FONTS.get(primary_family(family))
            if source is not None and source.pdf_name not in self._font_fetches:
                pending.setdefault(source.pdf_name, source)
        fonts = list(pending.values())

        if image_refs or fonts:
            image_results, font_results = asyncio.run(self._gather(image_refs, fonts))
        else:
            image_results, font_results = [], []
        for ref, result in zip(image_refs, image_results):
            self._store_fetch(ref, result)
        for source, result in zip(fonts, font_results):
            if isinstance(result, BaseException):
                result = (None, None, [f"{source.pdf_name}: {result}"])
            self._font_fetches[source.pdf_name] = result

        for family, bold in families:
            self.resolve_font(family, bold=bold)
        return ResolvedAssets(self)


class ResolvedAssets:
    """Read-only view handed to the renderers after :meth:`AssetResolver.prefetch`."""

    def __init__(self, resolver: AssetResolver):
        self._resolver = resolver
        self.ready = True

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(self._resolver.warnings)

    def image(self, url: Optional[str]) -> Optional[ImageHandle]:
        return self._resolver.resolve_image(url)

    def font(self, family: str, bold: bool = False) -> FontHandle:
        return self._resolver.resolve_font(family, bold=bold)
