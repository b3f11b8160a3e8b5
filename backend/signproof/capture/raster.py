from __future__ import annotations

import base64
import binascii
import io
from typing import Iterable, Tuple

from PIL import Image, ImageDraw

from signproof.capture.points import Point, Stroke
from signproof.core.errors import CaptureError

PNG_MIME = "image/png"


class RasterSurface:
    """
    Superfície raster (Pillow) onde os traços são desenhados.

    O desenho é sempre segmento a segmento, tanto no incremental quanto no
    redesenho completo, então a mesma sequência de traços gera os mesmos bytes.
    """

    def __init__(self, width: int, height: int, background: str = "#ffffff") -> None:
        if width <= 0 or height <= 0:
            raise CaptureError(
                f"Canvas size must be positive, got {width}x{height}",
                details={"width": width, "height": height},
            )
        self.width = width
        self.height = height
        self.background = background
        try:
            self._image = Image.new("RGB", (width, height), background)
        except (ValueError, MemoryError) as exc:
            raise CaptureError(f"Unable to create drawing surface: {exc}") from exc
        self._draw = ImageDraw.Draw(self._image)

    def reset(self) -> None:
        self._draw.rectangle((0, 0, self.width, self.height), fill=self.background)

    def draw_segment(self, start: Point, end: Point, color: str, width: int) -> None:
        draw_segment(self._draw, start, end, color, width)

    def draw_strokes(self, strokes: Iterable[Stroke]) -> None:
        for stroke in strokes:
            draw_stroke(self._draw, stroke)

    def to_png(self) -> bytes:
        return encode_png(self._image)


def draw_segment(draw: ImageDraw.ImageDraw, start: Point, end: Point, color: str, width: int) -> None:
    line = [(start.x, start.y), (end.x, end.y)]
    draw.line(line, fill=color, width=width)
    if width > 2:
        # pontas arredondadas (lineCap = round)
        radius = width / 2
        for x, y in line:
            draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=color)


def draw_stroke(draw: ImageDraw.ImageDraw, stroke: Stroke) -> None:
    points = stroke.points
    if len(points) < 2:
        return
    for previous, current in zip(points, points[1:]):
        draw_segment(draw, previous, current, stroke.color, stroke.width)


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG", optimize=False)
    return buf.getvalue()


def render_strokes(
    strokes: Iterable[Stroke],
    size: Tuple[int, int],
    background: str = "#ffffff",
) -> bytes:
    """Renderiza traços selados em um PNG, em ordem fixa e fundo fixo (determinístico)."""
    surface = RasterSurface(size[0], size[1], background)
    surface.draw_strokes(strokes)
    return surface.to_png()


def to_data_url(png_bytes: bytes, mime: str = PNG_MIME) -> str:
    return f"data:{mime};base64,{base64.b64encode(png_bytes).decode('ascii')}"


def decode_data_url(payload: str) -> Tuple[bytes, str | None]:
    """Aceita data URL ou base64 puro; retorna (bytes, mime detectado)."""
    data = (payload or "").strip()
    if not data:
        raise ValueError("Signature image is empty.")
    mime: str | None = None
    encoded = data
    if data.startswith("data:"):
        try:
            header, encoded = data.split(",", 1)
        except ValueError as exc:
            raise ValueError("Signature image has an invalid data URL.") from exc
        if ";base64" not in header:
            raise ValueError("Signature image must be base64 encoded.")
        if ":" in header:
            mime = header.split(";", 1)[0].split(":", 1)[1]
    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Signature image is not valid base64.") from exc
    return content, mime
