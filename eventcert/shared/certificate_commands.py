"""Backend-agnostic drawing commands for a certificate.

``build_draw_commands()`` walks a resolved :class:`LayoutModel` once and
emits a flat, ordered list of commands in canvas units with a top-left
origin. The vector and raster renderers only interpret this list; neither
one makes layout decisions of its own.

Conventions shared by every command:

* text is horizontally centred on ``x`` and its baseline sits on ``y``;
* images, rectangles and QR codes are anchored at their top-left corner;
* everything else (sizes, offsets, stroke widths) is in canvas units and is
  scaled uniformly by the raster renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from .certificate_assets import FontHandle, ImageHandle, ResolvedAssets
from .certificates_layout import LayoutModel, Position, TextBlock

QR_GAP = 15.0
QR_BORDER_MODULES = 1
TITLE_BASELINE_OFFSET_PCT = -4.0
SUBTITLE_BASELINE_OFFSET_PCT = 2.0
SUBTITLE_SCALE = 0.4
SEPARATOR_OFFSET_PCT = 3.0
SEPARATOR_START_PCT = 20.0
SEPARATOR_END_PCT = 80.0
SIGNATURE_TITLE_OFFSET = 20.0
SIGNATURE_IMAGE_GAP = 20.0
MISSING_VENUE = "[Venue]"
MISSING_DATE = "[Date]"


@dataclass(frozen=True)
class CertificateData:
    """Per-certificate values substituted into the layout."""

    participant_name: str
    event_title: str
    event_date: Optional[date] = None
    venue: Optional[str] = None
    certificate_number: Optional[str] = None


@dataclass(frozen=True)
class RectCommand:
    key: str
    x: float
    y: float
    width: float
    height: float
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: float = 0.0


@dataclass(frozen=True)
class ImageCommand:
    key: str
    image: ImageHandle
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class TextCommand:
    key: str
    text: str
    x: float
    y: float
    size: float
    color: str
    font: FontHandle


@dataclass(frozen=True)
class LineCommand:
    key: str
    x1: float
    y1: float
    x2: float
    y2: float
    color: str
    width: float


@dataclass(frozen=True)
class QrCommand:
    key: str
    payload: str
    modules: Tuple[Tuple[bool, ...], ...]
    x: float
    y: float
    size: float
    color: str = "#000000"

    @property
    def module_size(self) -> float:
        return self.size / len(self.modules)


DrawCommand = Union[RectCommand, ImageCommand, TextCommand, LineCommand, QrCommand]


def format_event_date(value: Optional[date]) -> str:
    """``March 5, 2025`` style, without a leading zero on the day."""
    if value is None:
        return MISSING_DATE
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def fill_placeholders(template: str, data: CertificateData) -> str:
    venue = (data.venue or "").strip() or MISSING_VENUE
    return (
        template.replace("{EVENT_NAME}", data.event_title or "")
        .replace("{EVENT_DATE}", format_event_date(data.event_date))
        .replace("{VENUE}", venue)
    )


def qr_modules(payload: str) -> Tuple[Tuple[bool, ...], ...]:
    """Module matrix (quiet zone included) encoding exactly ``payload``."""
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=1,
        border=QR_BORDER_MODULES,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    return tuple(tuple(bool(cell) for cell in row) for row in qr.get_matrix())


class _Composer:
    def __init__(self, layout: LayoutModel, data: CertificateData, assets: ResolvedAssets):
        self.layout = layout
        self.data = data
        self.assets = assets
        self.commands: List[DrawCommand] = []

    def px(self, pct: float) -> float:
        return self.layout.width * pct / 100.0

    def py(self, pct: float) -> float:
        return self.layout.height * pct / 100.0

    def font(self, family: str, bold: bool) -> FontHandle:
        return self.assets.font(family, bold)

    def text(
        self,
        key: str,
        text: str,
        position: Position,
        size: float,
        color: str,
        font: FontHandle,
        y_offset_pct: float = 0.0,
    ) -> None:
        if not text:
            return
        self.commands.append(
            TextCommand(
                key=key,
                text=text,
                x=self.px(position.x),
                y=self.py(position.y + y_offset_pct),
                size=size,
                color=color,
                font=font,
            )
        )

    def text_block(self, key: str, block: TextBlock) -> None:
        self.text(
            key,
            block.text,
            block.position,
            block.font_size,
            block.color,
            self.font(block.font_family, block.font_weight == "bold"),
        )

    def image(self, key: str, url: Optional[str], x: float, y: float, w: float, h: float) -> None:
        handle = self.assets.image(url)
        if handle is None:
            return
        self.commands.append(ImageCommand(key=key, image=handle, x=x, y=y, width=w, height=h))

    # --- elements in paint order -------------------------------------------

    def background(self) -> None:
        layout = self.layout
        self.commands.append(
            RectCommand(
                key="background",
                x=0.0,
                y=0.0,
                width=layout.width,
                height=layout.height,
                fill=layout.background.color,
            )
        )
        self.image(
            "background_image",
            layout.background.image_url,
            0.0,
            0.0,
            layout.width,
            layout.height,
        )

    def border(self) -> None:
        border = self.layout.border
        if border.width <= 0:
            return
        half = border.width / 2.0
        self.commands.append(
            RectCommand(
                key="border",
                x=half,
                y=half,
                width=self.layout.width - border.width,
                height=self.layout.height - border.width,
                stroke=border.color,
                stroke_width=border.width,
            )
        )

    def logos(self) -> None:
        block = self.layout.logos
        for index, logo in enumerate(block.logos):
            self.image(
                f"logo.{index}",
                logo.url,
                self.px(logo.position.x),
                self.py(logo.position.y),
                logo.size.width,
                logo.size.height,
            )
        size = block.sponsor_size
        for index, url in enumerate(block.sponsor_logos):
            self.image(
                f"sponsor.{index}",
                url,
                self.px(block.sponsor_position.x),
                self.py(block.sponsor_position.y) + index * (size.height + block.sponsor_spacing),
                size.width,
                size.height,
            )

    def header(self) -> None:
        header = self.layout.header
        self.text_block("header.organization", header.organization)
        self.text_block("header.sub_unit", header.sub_unit)
        self.text_block("header.location", header.location)

    def title(self) -> None:
        title = self.layout.title
        self.text(
            "title",
            title.text,
            title.position,
            title.font_size,
            title.color,
            self.font(title.font_family, True),
            TITLE_BASELINE_OFFSET_PCT,
        )
        self.text(
            "subtitle",
            title.subtitle,
            title.position,
            title.font_size * SUBTITLE_SCALE,
            title.color,
            self.font(title.font_family, False),
            SUBTITLE_BASELINE_OFFSET_PCT,
        )

    def participant_name(self) -> None:
        name = self.layout.name
        bold = name.font_weight == "bold"
        self.text(
            "name",
            self.data.participant_name,
            name.position,
            name.font_size,
            name.color,
            self.font(name.font_family, bold),
        )
        if name.separator_enabled and name.separator_width > 0:
            y = self.py(name.position.y + SEPARATOR_OFFSET_PCT)
            self.commands.append(
                LineCommand(
                    key="separator",
                    x1=self.px(SEPARATOR_START_PCT),
                    y1=y,
                    x2=self.px(SEPARATOR_END_PCT),
                    y2=y,
                    color=name.separator_color,
                    width=name.separator_width,
                )
            )

    def participation(self) -> None:
        block = self.layout.participation
        text = fill_placeholders(block.template, self.data)
        if not text.strip():
            return
        lines = text.splitlines()
        line_height = block.font_size * block.line_height
        anchor_y = self.py(block.position.y)
        first_y = anchor_y - (len(lines) - 1) * line_height / 2.0
        font = self.font(block.font_family, block.font_weight == "bold")
        x = self.px(block.position.x)
        for index, line in enumerate(lines):
            if not line:
                continue
            self.commands.append(
                TextCommand(
                    key=f"participation.{index}",
                    text=line,
                    x=x,
                    y=first_y + index * line_height,
                    size=block.font_size,
                    color=block.color,
                    font=font,
                )
            )

    def signatures(self) -> None:
        for index, sig in enumerate(self.layout.signatures):
            x = self.px(sig.position.x)
            y = self.py(sig.position.y)
            if sig.image_url:
                w, h = sig.image_size.width, sig.image_size.height
                self.image(
                    f"signature.{index}.image",
                    sig.image_url,
                    x - w / 2.0,
                    y - SIGNATURE_IMAGE_GAP - h,
                    w,
                    h,
                )
            if sig.name:
                self.commands.append(
                    TextCommand(
                        key=f"signature.{index}.name",
                        text=sig.name,
                        x=x,
                        y=y,
                        size=sig.name_font_size,
                        color=sig.name_color,
                        font=self.font(sig.font_family, True),
                    )
                )
            if sig.title:
                self.commands.append(
                    TextCommand(
                        key=f"signature.{index}.title",
                        text=sig.title,
                        x=x,
                        y=y + SIGNATURE_TITLE_OFFSET,
                        size=sig.title_font_size,
                        color=sig.title_color,
                        font=self.font(sig.font_family, False),
                    )
                )

    def certificate_id(self) -> None:
        number = self.data.certificate_number
        if not number:
            return
        block = self.layout.certificate_id
        font = self.font(block.font_family, False)
        x = self.px(block.position.x)
        y = self.py(block.position.y)
        self.commands.append(
            TextCommand(
                key="certificate_id",
                text=number,
                x=x,
                y=y,
                size=block.font_size,
                color=block.color,
                font=font,
            )
        )
        qr = self.layout.qr
        if not qr.enabled:
            return
        # measured once so both backends place the code identically
        text_width = font.pdf_width(number, block.font_size)
        self.commands.append(
            QrCommand(
                key="qr",
                payload=number,
                modules=qr_modules(number),
                x=x + text_width / 2.0 + QR_GAP,
                y=y - qr.size / 2.0,
                size=qr.size,
            )
        )

    def build(self) -> List[DrawCommand]:
        self.background()
        self.border()
        self.logos()
        self.header()
        self.title()
        self.text_block("presented_to", self.layout.presented_to)
        self.participant_name()
        self.participation()
        self.signatures()
        self.certificate_id()
        return self.commands


def build_draw_commands(
    layout: LayoutModel, data: CertificateData, assets: ResolvedAssets
) -> List[DrawCommand]:
    """Ordered drawing commands for one certificate."""
    if not getattr(assets, "ready", False):
        raise RuntimeError("assets must be prefetched before composing a certificate")
    return _Composer(layout, data, assets).build()


@dataclass(frozen=True)
class RenderedArtifact:
    """Output of one renderer.

    ``placements`` maps command keys to percentage-space anchors (top-left
    origin) recovered from what was actually drawn; ``native`` holds the
    same anchors in the backend's own coordinate system.
    """

    data: bytes
    content_type: str
    extension: str
    width: float
    height: float
    placements: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    native: Dict[str, Tuple[float, float]] = field(default_factory=dict)
