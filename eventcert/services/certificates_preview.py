import base64
import hashlib
import json
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

from flask import current_app

from ..shared.certificate_assets import AssetResolver
from ..shared.certificate_commands import CertificateData
from ..shared.certificate_numbers import FALLBACK_PREFIX, format_certificate_number
from ..shared.certificates import render_certificate_artifacts
from ..shared.certificates_layout import LayoutModel, resolve, serialize

_CACHE_TTL_SECONDS = 45
_SAMPLE_NAME = "Sample Participant Name"
_SAMPLE_EVENT = "Sample Event"
_SAMPLE_VENUE = "Main Hall"


@dataclass(frozen=True)
class PreviewResult:
    image_base64: str
    warnings: tuple[str, ...]
    width: int
    height: int


_preview_cache: dict[str, tuple[float, PreviewResult]] = {}


def _build_cache_key(layout: LayoutModel, data: CertificateData, raster_width) -> str:
    layout_fingerprint = json.dumps(serialize(layout), sort_keys=True, separators=(",", ":"))
    raw = "|".join(
        [
            data.event_title,
            data.event_date.isoformat() if data.event_date else "",
            data.venue or "",
            str(raster_width or ""),
            layout_fingerprint,
        ]
    )
    return hashlib.sha256(raw.encode()).hexdigest()


def sample_data(layout: LayoutModel, event=None) -> CertificateData:
    prefix = layout.certificate_id.prefix or FALLBACK_PREFIX
    return CertificateData(
        participant_name=_SAMPLE_NAME,
        event_title=(getattr(event, "title", None) or _SAMPLE_EVENT),
        event_date=getattr(event, "start_date", None) or date.today(),
        venue=getattr(event, "venue", None) or _SAMPLE_VENUE,
        certificate_number=format_certificate_number(prefix, 1),
    )


def clear_preview_cache() -> None:
    _preview_cache.clear()


def generate_preview(raw_config, event=None, raster_width: Optional[float] = None) -> PreviewResult:
    layout = resolve(raw_config)
    data = sample_data(layout, event)
    if raster_width is None:
        raster_width = current_app.config.get("CERT_RASTER_WIDTH")
    key = _build_cache_key(layout, data, raster_width)
    now = time.monotonic()
    cached = _preview_cache.get(key)
    if cached and now - cached[0] < _CACHE_TTL_SECONDS:
        return cached[1]

    resolver = AssetResolver(
        assets_dir=current_app.config.get("CERT_ASSETS_DIR"),
        timeout=current_app.config.get("CERT_ASSET_TIMEOUT", 10.0),
    )
    rendered = render_certificate_artifacts(layout, data, resolver, raster_width=raster_width)
    result = PreviewResult(
        image_base64=base64.b64encode(rendered.raster.data).decode("ascii"),
        warnings=tuple(rendered.warnings),
        width=int(rendered.raster.width),
        height=int(rendered.raster.height),
    )
    _preview_cache[key] = (now, result)
    for stale_key, (stamp, _) in list(_preview_cache.items()):
        if now - stamp >= _CACHE_TTL_SECONDS:
            _preview_cache.pop(stale_key, None)
    return result
