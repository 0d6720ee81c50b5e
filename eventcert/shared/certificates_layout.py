"""Certificate layout model.

``resolve()`` turns a raw, possibly partial certificate config (the JSON the
design editor saves) into an immutable :class:`LayoutModel` with every block
populated. It never raises: malformed values fall back to the defaults below.
``serialize()`` produces the raw shape again, and
``resolve(serialize(model)) == model`` for any resolved model.

All positions are percentages of the canvas width/height; sizes, offsets and
font sizes are in canvas units.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

DEFAULT_CANVAS_WIDTH = 2000.0
DEFAULT_CANVAS_HEIGHT = 1200.0
MIN_CANVAS_SIDE = 100.0
MAX_CANVAS_SIDE = 10000.0

DEFAULT_SERIF = "Libre Baskerville, serif"
DEFAULT_SCRIPT = "MonteCarlo, cursive"

DEFAULT_PARTICIPATION_TEMPLATE = (
    "For his/her active participation during the {EVENT_NAME} "
    "held on {EVENT_DATE} at {VENUE}"
)
PLACEHOLDERS = ("{EVENT_NAME}", "{EVENT_DATE}", "{VENUE}")

FONT_WEIGHTS = ("normal", "bold")

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class Background:
    color: str = "#ffffff"
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Border:
    color: str = "#1e40af"
    width: float = 5.0


@dataclass(frozen=True)
class TextBlock:
    text: str
    font_size: float
    color: str
    position: Position
    font_family: str = DEFAULT_SERIF
    font_weight: str = "normal"


@dataclass(frozen=True)
class TitleBlock:
    text: str = "CERTIFICATE"
    subtitle: str = "OF PARTICIPATION"
    font_size: float = 56.0
    color: str = "#000000"
    font_family: str = DEFAULT_SERIF
    position: Position = Position(50.0, 28.0)


@dataclass(frozen=True)
class NameBlock:
    font_size: float = 48.0
    color: str = "#000000"
    font_family: str = DEFAULT_SCRIPT
    font_weight: str = "bold"
    position: Position = Position(50.0, 50.0)
    separator_enabled: bool = True
    separator_color: str = "#000000"
    separator_width: float = 2.0


@dataclass(frozen=True)
class ParticipationBlock:
    template: str = DEFAULT_PARTICIPATION_TEMPLATE
    font_size: float = 18.0
    color: str = "#000000"
    font_family: str = DEFAULT_SERIF
    font_weight: str = "normal"
    position: Position = Position(50.0, 60.0)
    line_height: float = 1.5


@dataclass(frozen=True)
class HeaderBlock:
    organization: TextBlock
    sub_unit: TextBlock
    location: TextBlock


@dataclass(frozen=True)
class Logo:
    url: str
    size: Size = Size(120.0, 120.0)
    position: Position = Position(15.0, 10.0)


@dataclass(frozen=True)
class LogoBlock:
    logos: tuple[Logo, ...] = ()
    sponsor_logos: tuple[str, ...] = ()
    sponsor_size: Size = Size(80.0, 80.0)
    sponsor_position: Position = Position(90.0, 5.0)
    sponsor_spacing: float = 10.0


@dataclass(frozen=True)
class SignatureBlock:
    name: str = ""
    title: str = ""
    image_url: Optional[str] = None
    image_size: Size = Size(300.0, 100.0)
    position: Position = Position(50.0, 92.0)
    name_font_size: float = 14.0
    name_color: str = "#000000"
    title_font_size: float = 12.0
    title_color: str = "#000000"
    font_family: str = DEFAULT_SERIF


@dataclass(frozen=True)
class CertificateIdBlock:
    prefix: str = ""
    position: Position = Position(50.0, 75.0)
    font_size: float = 16.0
    color: str = "#000000"
    font_family: str = DEFAULT_SERIF


@dataclass(frozen=True)
class QrBlock:
    enabled: bool = False
    size: float = 60.0


def _default_header() -> HeaderBlock:
    return HeaderBlock(
        organization=TextBlock("", 20.0, "#000000", Position(50.0, 8.0)),
        sub_unit=TextBlock("", 28.0, "#000000", Position(50.0, 11.0), font_weight="bold"),
        location=TextBlock("", 20.0, "#000000", Position(50.0, 14.0)),
    )


def _default_presented_to() -> TextBlock:
    return TextBlock(
        "This certificate is proudly presented to",
        16.0,
        "#000000",
        Position(50.0, 38.0),
    )


@dataclass(frozen=True)
class LayoutModel:
    width: float = DEFAULT_CANVAS_WIDTH
    height: float = DEFAULT_CANVAS_HEIGHT
    background: Background = Background()
    border: Border = Border()
    title: TitleBlock = TitleBlock()
    presented_to: TextBlock = field(default_factory=_default_presented_to)
    name: NameBlock = NameBlock()
    participation: ParticipationBlock = ParticipationBlock()
    header: HeaderBlock = field(default_factory=_default_header)
    logos: LogoBlock = LogoBlock()
    signatures: tuple[SignatureBlock, ...] = ()
    certificate_id: CertificateIdBlock = CertificateIdBlock()
    qr: QrBlock = QrBlock()

    def image_urls(self) -> tuple[str, ...]:
        """Every image reference in drawing order, without duplicates."""
        urls: list[str] = []
        candidates = [self.background.image_url]
        candidates.extend(logo.url for logo in self.logos.logos)
        candidates.extend(self.logos.sponsor_logos)
        candidates.extend(sig.image_url for sig in self.signatures)
        for url in candidates:
            if url and url not in urls:
                urls.append(url)
        return tuple(urls)

    def font_families(self) -> tuple[tuple[str, bool], ...]:
        """(family, bold) pairs used by text blocks, without duplicates."""
        pairs: list[tuple[str, bool]] = []

        def _add(family: str, bold: bool) -> None:
            if (family, bold) not in pairs:
                pairs.append((family, bold))

        for block in (
            self.header.organization,
            self.header.sub_unit,
            self.header.location,
            self.presented_to,
        ):
            _add(block.font_family, block.font_weight == "bold")
        _add(self.title.font_family, True)
        _add(self.title.font_family, False)
        _add(self.name.font_family, self.name.font_weight == "bold")
        _add(self.participation.font_family, self.participation.font_weight == "bold")
        for sig in self.signatures:
            _add(sig.font_family, True)
            _add(sig.font_family, False)
        _add(self.certificate_id.font_family, False)
        return tuple(pairs)


# --- coercion helpers -------------------------------------------------------


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _number(
    value: Any,
    default: float,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not isinstance(value, (int, float)):
        return default
    try:
        result = float(value)
    except OverflowError:
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    if minimum is not None and result < minimum:
        result = minimum
    if maximum is not None and result > maximum:
        result = maximum
    return result


def _positive(value: Any, default: float) -> float:
    result = _number(value, default, minimum=0.0)
    return result if result > 0 else default


def _percent(value: Any, default: float) -> float:
    return _number(value, default, minimum=0.0, maximum=100.0)


def _color(value: Any, default: str) -> str:
    if not isinstance(value, str):
        return default
    match = _HEX_COLOR_RE.match(value.strip())
    if not match:
        return default
    digits = match.group(1).lower()
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits}"


def _text(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def _optional_url(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _family(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _weight(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in FONT_WEIGHTS:
        return value.strip().lower()
    return default


def _flag(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _position(value: Any, default: Position) -> Position:
    raw = _mapping(value)
    return Position(
        x=_percent(raw.get("x"), default.x),
        y=_percent(raw.get("y"), default.y),
    )


def _size(value: Any, default: Size) -> Size:
    raw = _mapping(value)
    return Size(
        width=_positive(raw.get("width"), default.width),
        height=_positive(raw.get("height"), default.height),
    )


def _text_block(text: Any, value: Any, default: TextBlock) -> TextBlock:
    raw = _mapping(value)
    return TextBlock(
        text=_text(text, default.text),
        font_size=_positive(raw.get("font_size"), default.font_size),
        color=_color(raw.get("color"), default.color),
        position=_position(raw.get("position"), default.position),
        font_family=_family(raw.get("font_family"), default.font_family),
        font_weight=_weight(raw.get("font_weight"), default.font_weight),
    )


# --- block resolvers --------------------------------------------------------


def _resolve_title(raw: Mapping[str, Any]) -> TitleBlock:
    base = TitleBlock()
    return TitleBlock(
        text=_text(raw.get("title_text"), base.text),
        subtitle=_text(raw.get("title_subtitle"), base.subtitle),
        font_size=_positive(raw.get("title_font_size"), base.font_size),
        color=_color(raw.get("title_color"), base.color),
        font_family=_family(raw.get("title_font_family"), base.font_family),
        position=_position(raw.get("title_position"), base.position),
    )


def _resolve_name(value: Any) -> NameBlock:
    raw = _mapping(value)
    base = NameBlock()
    return NameBlock(
        font_size=_positive(raw.get("font_size"), base.font_size),
        color=_color(raw.get("color"), base.color),
        font_family=_family(raw.get("font_family"), base.font_family),
        font_weight=_weight(raw.get("font_weight"), base.font_weight),
        position=_position(raw.get("position"), base.position),
        separator_enabled=_flag(raw.get("separator_enabled"), base.separator_enabled),
        separator_color=_color(raw.get("separator_color"), base.separator_color),
        separator_width=_number(
            raw.get("separator_width"), base.separator_width, minimum=0.0
        ),
    )


def _resolve_participation(value: Any) -> ParticipationBlock:
    raw = _mapping(value)
    base = ParticipationBlock()
    return ParticipationBlock(
        template=_text(raw.get("text_template"), base.template),
        font_size=_positive(raw.get("font_size"), base.font_size),
        color=_color(raw.get("color"), base.color),
        font_family=_family(raw.get("font_family"), base.font_family),
        font_weight=_weight(raw.get("font_weight"), base.font_weight),
        position=_position(raw.get("position"), base.position),
        line_height=_positive(raw.get("line_height"), base.line_height),
    )


def _resolve_header(value: Any) -> HeaderBlock:
    raw = _mapping(value)
    base = _default_header()
    return HeaderBlock(
        organization=_text_block(
            raw.get("republic_text"), raw.get("republic_config"), base.organization
        ),
        sub_unit=_text_block(
            raw.get("university_text"), raw.get("university_config"), base.sub_unit
        ),
        location=_text_block(
            raw.get("location_text"), raw.get("location_config"), base.location
        ),
    )


def _resolve_logos(value: Any) -> LogoBlock:
    raw = _mapping(value)
    base = LogoBlock()
    logos: list[Logo] = []
    entries = raw.get("logos")
    if isinstance(entries, (list, tuple)):
        for entry in entries:
            item = _mapping(entry)
            url = _optional_url(item.get("url"))
            if not url:
                continue
            logos.append(
                Logo(
                    url=url,
                    size=_size(item.get("size"), Logo.size),
                    position=_position(item.get("position"), Logo.position),
                )
            )
    legacy_url = _optional_url(raw.get("psu_logo_url"))
    if not logos and legacy_url:
        logos.append(
            Logo(
                url=legacy_url,
                size=_size(raw.get("psu_logo_size"), Logo.size),
                position=_position(raw.get("psu_logo_position"), Logo.position),
            )
        )
    sponsors: list[str] = []
    sponsor_entries = raw.get("sponsor_logos")
    if isinstance(sponsor_entries, (list, tuple)):
        for entry in sponsor_entries:
            url = _optional_url(entry.get("url") if isinstance(entry, Mapping) else entry)
            if url:
                sponsors.append(url)
    return LogoBlock(
        logos=tuple(logos),
        sponsor_logos=tuple(sponsors),
        sponsor_size=_size(raw.get("sponsor_logo_size"), base.sponsor_size),
        sponsor_position=_position(raw.get("sponsor_logo_position"), base.sponsor_position),
        sponsor_spacing=_number(
            raw.get("sponsor_logo_spacing"), base.sponsor_spacing, minimum=0.0
        ),
    )


def _resolve_signatures(value: Any) -> tuple[SignatureBlock, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    base = SignatureBlock()
    blocks: list[SignatureBlock] = []
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        blocks.append(
            SignatureBlock(
                name=_text(entry.get("name"), base.name),
                title=_text(entry.get("position"), base.title),
                image_url=_optional_url(entry.get("signature_image_url")),
                image_size=Size(
                    width=_positive(
                        entry.get("signature_image_width"), base.image_size.width
                    ),
                    height=_positive(
                        entry.get("signature_image_height"), base.image_size.height
                    ),
                ),
                position=_position(entry.get("position_config"), base.position),
                name_font_size=_positive(entry.get("name_font_size"), base.name_font_size),
                name_color=_color(entry.get("name_color"), base.name_color),
                title_font_size=_positive(
                    entry.get("position_font_size"), base.title_font_size
                ),
                title_color=_color(entry.get("position_color"), base.title_color),
                font_family=_family(entry.get("font_family"), base.font_family),
            )
        )
    return tuple(blocks)


def _resolve_certificate_id(raw: Mapping[str, Any]) -> CertificateIdBlock:
    base = CertificateIdBlock()
    return CertificateIdBlock(
        prefix=_text(raw.get("cert_id_prefix"), base.prefix).strip(),
        position=_position(raw.get("cert_id_position"), base.position),
        font_size=_positive(raw.get("cert_id_font_size"), base.font_size),
        color=_color(raw.get("cert_id_color"), base.color),
        font_family=_family(raw.get("cert_id_font_family"), base.font_family),
    )


def resolve(raw_config: Any) -> LayoutModel:
    """Build a fully populated layout from a raw certificate config."""
    raw = _mapping(raw_config)
    return LayoutModel(
        width=_number(
            raw.get("width"),
            DEFAULT_CANVAS_WIDTH,
            minimum=MIN_CANVAS_SIDE,
            maximum=MAX_CANVAS_SIDE,
        ),
        height=_number(
            raw.get("height"),
            DEFAULT_CANVAS_HEIGHT,
            minimum=MIN_CANVAS_SIDE,
            maximum=MAX_CANVAS_SIDE,
        ),
        background=Background(
            color=_color(raw.get("background_color"), Background.color),
            image_url=_optional_url(raw.get("background_image_url")),
        ),
        border=Border(
            color=_color(raw.get("border_color"), Border.color),
            width=_number(raw.get("border_width"), Border.width, minimum=0.0),
        ),
        title=_resolve_title(raw),
        presented_to=_text_block(
            _mapping(raw.get("is_given_to_config")).get("text"),
            raw.get("is_given_to_config"),
            _default_presented_to(),
        ),
        name=_resolve_name(raw.get("name_config")),
        participation=_resolve_participation(raw.get("participation_text_config")),
        header=_resolve_header(raw.get("header_config")),
        logos=_resolve_logos(raw.get("logo_config")),
        signatures=_resolve_signatures(raw.get("signature_blocks")),
        certificate_id=_resolve_certificate_id(raw),
        qr=QrBlock(
            enabled=_flag(raw.get("qr_code_enabled"), QrBlock.enabled),
            size=_positive(raw.get("qr_code_size"), QrBlock.size),
        ),
    )


# --- serialization ----------------------------------------------------------


def _position_dict(position: Position) -> dict:
    return {"x": position.x, "y": position.y}


def _size_dict(size: Size) -> dict:
    return {"width": size.width, "height": size.height}


def _text_style_dict(block: TextBlock) -> dict:
    return {
        "font_size": block.font_size,
        "color": block.color,
        "position": _position_dict(block.position),
        "font_family": block.font_family,
        "font_weight": block.font_weight,
    }


def serialize(layout: LayoutModel) -> dict:
    """Return the raw config shape for ``layout``; JSON-safe."""
    header = layout.header
    return {
        "width": layout.width,
        "height": layout.height,
        "background_color": layout.background.color,
        "background_image_url": layout.background.image_url,
        "border_color": layout.border.color,
        "border_width": layout.border.width,
        "title_text": layout.title.text,
        "title_subtitle": layout.title.subtitle,
        "title_font_size": layout.title.font_size,
        "title_color": layout.title.color,
        "title_font_family": layout.title.font_family,
        "title_position": _position_dict(layout.title.position),
        "is_given_to_config": {
            "text": layout.presented_to.text,
            **_text_style_dict(layout.presented_to),
        },
        "name_config": {
            "font_size": layout.name.font_size,
            "color": layout.name.color,
            "font_family": layout.name.font_family,
            "font_weight": layout.name.font_weight,
            "position": _position_dict(layout.name.position),
            "separator_enabled": layout.name.separator_enabled,
            "separator_color": layout.name.separator_color,
            "separator_width": layout.name.separator_width,
        },
        "participation_text_config": {
            "text_template": layout.participation.template,
            "font_size": layout.participation.font_size,
            "color": layout.participation.color,
            "font_family": layout.participation.font_family,
            "font_weight": layout.participation.font_weight,
            "position": _position_dict(layout.participation.position),
            "line_height": layout.participation.line_height,
        },
        "header_config": {
            "republic_text": header.organization.text,
            "university_text": header.sub_unit.text,
            "location_text": header.location.text,
            "republic_config": _text_style_dict(header.organization),
            "university_config": _text_style_dict(header.sub_unit),
            "location_config": _text_style_dict(header.location),
        },
        "logo_config": {
            "logos": [
                {
                    "url": logo.url,
                    "size": _size_dict(logo.size),
                    "position": _position_dict(logo.position),
                }
                for logo in layout.logos.logos
            ],
            "sponsor_logos": list(layout.logos.sponsor_logos),
            "sponsor_logo_size": _size_dict(layout.logos.sponsor_size),
            "sponsor_logo_position": _position_dict(layout.logos.sponsor_position),
            "sponsor_logo_spacing": layout.logos.sponsor_spacing,
        },
        "signature_blocks": [
            {
                "name": sig.name,
                "position": sig.title,
                "signature_image_url": sig.image_url,
                "signature_image_width": sig.image_size.width,
                "signature_image_height": sig.image_size.height,
                "position_config": _position_dict(sig.position),
                "name_font_size": sig.name_font_size,
                "name_color": sig.name_color,
                "position_font_size": sig.title_font_size,
                "position_color": sig.title_color,
                "font_family": sig.font_family,
            }
            for sig in layout.signatures
        ],
        "cert_id_prefix": layout.certificate_id.prefix,
        "cert_id_position": _position_dict(layout.certificate_id.position),
        "cert_id_font_size": layout.certificate_id.font_size,
        "cert_id_color": layout.certificate_id.color,
        "cert_id_font_family": layout.certificate_id.font_family,
        "qr_code_enabled": layout.qr.enabled,
        "qr_code_size": layout.qr.size,
    }
