"""Vector (PDF) interpreter for certificate draw commands.

reportlab puts the origin at the bottom-left of the page, so every vertical
canvas coordinate ``y`` becomes ``page_height - y`` here and images and
rectangles are placed by their bottom edge, ``page_height - top - height``.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Iterable, Optional

from reportlab.lib.colors import HexColor, white
from reportlab.pdfgen import canvas

from .certificate_commands import (
    DrawCommand,
    ImageCommand,
    LineCommand,
    QrCommand,
    RectCommand,
    RenderedArtifact,
    TextCommand,
)
from .certificate_errors import RenderFailure

logger = logging.getLogger("eventcert.render")


class VectorRenderer:
    backend = "vector"
    content_type = "application/pdf"
    extension = "pdf"

    def __init__(self, title: Optional[str] = None):
        self.title = title

    def render(
        self, commands: Iterable[DrawCommand], width: float, height: float
    ) -> RenderedArtifact:
        try:
            return self._render(list(commands), width, height)
        except RenderFailure:
            raise
        except Exception as exc:
            logger.warning("[CERT-FAIL] vector render failed: %s", exc)
            raise RenderFailure(self.backend, f"{exc.__class__.__name__}: {exc}") from exc

    def _render(self, commands, width: float, height: float) -> RenderedArtifact:
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(width, height))
        if self.title:
            c.setTitle(self.title)
        placements = {}
        native = {}

        def record(key: str, x: float, y_pdf: float) -> None:
            native[key] = (x, y_pdf)
            placements[key] = (x / width * 100.0, (height - y_pdf) / height * 100.0)

        for cmd in commands:
            if isinstance(cmd, RectCommand):
                bottom = height - cmd.y - cmd.height
                if cmd.fill:
                    c.setFillColor(HexColor(cmd.fill))
                    c.rect(cmd.x, bottom, cmd.width, cmd.height, stroke=0, fill=1)
                if cmd.stroke and cmd.stroke_width > 0:
                    c.setStrokeColor(HexColor(cmd.stroke))
                    c.setLineWidth(cmd.stroke_width)
                    c.rect(cmd.x, bottom, cmd.width, cmd.height, stroke=1, fill=0)
            elif isinstance(cmd, ImageCommand):
                bottom = height - cmd.y - cmd.height
                c.drawImage(
                    cmd.image.reader(),
                    cmd.x,
                    bottom,
                    width=cmd.width,
                    height=cmd.height,
                    mask="auto",
                )
                record(cmd.key, cmd.x, bottom + cmd.height)
            elif isinstance(cmd, TextCommand):
                text_width = cmd.font.pdf_width(cmd.text, cmd.size)
                left = cmd.x - text_width / 2.0
                baseline = height - cmd.y
                c.setFont(cmd.font.pdf_name, cmd.size)
                c.setFillColor(HexColor(cmd.color))
                c.drawString(left, baseline, cmd.text)
                record(cmd.key, left + text_width / 2.0, baseline)
            elif isinstance(cmd, LineCommand):
                c.setStrokeColor(HexColor(cmd.color))
                c.setLineWidth(cmd.width)
                c.line(cmd.x1, height - cmd.y1, cmd.x2, height - cmd.y2)
                record(cmd.key, cmd.x1, height - cmd.y1)
            elif isinstance(cmd, QrCommand):
                self._draw_qr(c, cmd, height)
                record(cmd.key, cmd.x, height - cmd.y)
            else:  # pragma: no cover - exhaustive over DrawCommand
                raise RenderFailure(self.backend, f"unknown command {cmd!r}")

        c.showPage()
        c.save()
        return RenderedArtifact(
            data=buffer.getvalue(),
            content_type=self.content_type,
            extension=self.extension,
            width=width,
            height=height,
            placements=placements,
            native=native,
        )

    @staticmethod
    def _draw_qr(c, cmd: QrCommand, height: float) -> None:
        module = cmd.module_size
        top = height - cmd.y
        c.setFillColor(white)
        c.rect(cmd.x, top - cmd.size, cmd.size, cmd.size, stroke=0, fill=1)
        c.setFillColor(HexColor(cmd.color))
        for row_index, row in enumerate(cmd.modules):
            for col_index, dark in enumerate(row):
                if not dark:
                    continue
                c.rect(
                    cmd.x + col_index * module,
                    top - (row_index + 1) * module,
                    module,
                    module,
                    stroke=0,
                    fill=1,
                )
