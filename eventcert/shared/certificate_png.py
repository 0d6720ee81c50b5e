"""Raster (PNG) interpreter for certificate draw commands.

Pillow's origin is the top-left pixel, the same as the command list, so no
vertical flip happens here. Every coordinate, size, font size and stroke
width is multiplied by ``scale = target_width / canvas_width``.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Iterable, Optional

from PIL import Image, ImageDraw

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


class RasterRenderer:
    backend = "raster"
    content_type = "image/png"
    extension = "png"

    def __init__(self, target_width: Optional[float] = None):
        self.target_width = target_width

    def scale_for(self, width: float) -> float:
        if not self.target_width or self.target_width <= 0:
            return 1.0
        return self.target_width / width

    def render(
        self, commands: Iterable[DrawCommand], width: float, height: float
    ) -> RenderedArtifact:
        try:
            return self._render(list(commands), width, height)
        except RenderFailure:
            raise
        except Exception as exc:
            logger.warning("[CERT-FAIL] raster render failed: %s", exc)
            raise RenderFailure(self.backend, f"{exc.__class__.__name__}: {exc}") from exc

    def _render(self, commands, width: float, height: float) -> RenderedArtifact:
        s = self.scale_for(width)
        pixel_w = max(1, int(round(width * s)))
        pixel_h = max(1, int(round(height * s)))
        img = Image.new("RGB", (pixel_w, pixel_h), "white")
        draw = ImageDraw.Draw(img)
        placements = {}
        native = {}

        def record(key: str, x_px: float, y_px: float) -> None:
            native[key] = (x_px, y_px)
            placements[key] = (x_px / s / width * 100.0, y_px / s / height * 100.0)

        for cmd in commands:
            if isinstance(cmd, RectCommand):
                self._draw_rect(draw, cmd, s)
            elif isinstance(cmd, ImageCommand):
                left = int(round(cmd.x * s))
                top = int(round(cmd.y * s))
                size = (
                    max(1, int(round(cmd.width * s))),
                    max(1, int(round(cmd.height * s))),
                )
                resized = cmd.image.image.resize(size, Image.Resampling.LANCZOS)
                img.paste(resized, (left, top), resized)
                record(cmd.key, cmd.x * s, cmd.y * s)
            elif isinstance(cmd, TextCommand):
                font = cmd.font.raster_font(cmd.size * s)
                text_width = font.getlength(cmd.text)
                left = cmd.x * s - text_width / 2.0
                baseline = cmd.y * s
                draw.text((left, baseline), cmd.text, font=font, fill=cmd.color, anchor="ls")
                record(cmd.key, left + text_width / 2.0, baseline)
            elif isinstance(cmd, LineCommand):
                draw.line(
                    [(cmd.x1 * s, cmd.y1 * s), (cmd.x2 * s, cmd.y2 * s)],
                    fill=cmd.color,
                    width=max(1, int(round(cmd.width * s))),
                )
                record(cmd.key, cmd.x1 * s, cmd.y1 * s)
            elif isinstance(cmd, QrCommand):
                self._draw_qr(draw, cmd, s)
                record(cmd.key, cmd.x * s, cmd.y * s)
            else:  # pragma: no cover - exhaustive over DrawCommand
                raise RenderFailure(self.backend, f"unknown command {cmd!r}")

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return RenderedArtifact(
            data=buffer.getvalue(),
            content_type=self.content_type,
            extension=self.extension,
            width=pixel_w,
            height=pixel_h,
            placements=placements,
            native=native,
        )

    @staticmethod
    def _draw_rect(draw: ImageDraw.ImageDraw, cmd: RectCommand, s: float) -> None:
        if cmd.fill:
            draw.rectangle(
                [
                    cmd.x * s,
                    cmd.y * s,
                    (cmd.x + cmd.width) * s - 1,
                    (cmd.y + cmd.height) * s - 1,
                ],
                fill=cmd.fill,
            )
        if cmd.stroke and cmd.stroke_width > 0:
            # Pillow strokes inward from the box; reportlab centres the stroke on the path.
            half = cmd.stroke_width / 2.0
            draw.rectangle(
                [
                    (cmd.x - half) * s,
                    (cmd.y - half) * s,
                    (cmd.x + cmd.width + half) * s - 1,
                    (cmd.y + cmd.height + half) * s - 1,
                ],
                outline=cmd.stroke,
                width=max(1, int(round(cmd.stroke_width * s))),
            )

    @staticmethod
    def _draw_qr(draw: ImageDraw.ImageDraw, cmd: QrCommand, s: float) -> None:
        module = cmd.module_size * s
        origin_x = cmd.x * s
        origin_y = cmd.y * s
        draw.rectangle(
            [
                round(origin_x),
                round(origin_y),
                round(origin_x + cmd.size * s) - 1,
                round(origin_y + cmd.size * s) - 1,
            ],
            fill="white",
        )
        for row_index, row in enumerate(cmd.modules):
            top = round(origin_y + row_index * module)
            bottom = max(top, round(origin_y + (row_index + 1) * module) - 1)
            for col_index, dark in enumerate(row):
                if not dark:
                    continue
                left = round(origin_x + col_index * module)
                right = max(left, round(origin_x + (col_index + 1) * module) - 1)
                draw.rectangle([left, top, right, bottom], fill=cmd.color)
