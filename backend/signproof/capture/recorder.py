from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from signproof.capture.device import DeviceContext
from signproof.capture.metadata import SignatureMetadata, SignatureMetadataExtractor
from signproof.capture.points import Point, Stroke
from signproof.capture.raster import RasterSurface, render_strokes, to_data_url
from signproof.core.config import settings
from signproof.core.logging_setup import logger

ChangeListener = Callable[[bool, Optional[str]], None]


@dataclass(frozen=True)
class SignatureCapture:
    strokes: tuple[Stroke, ...]

    @property
    def is_empty(self) -> bool:
        return not self.strokes


class StrokeRecorder:
    """
    Agrupa pontos em traços (pen-down -> pen-up) e mantém o raster do canvas.

    `extend` desenha apenas o último segmento, então a latência não cresce com
    a quantidade de tinta. `undo` redesenha tudo a partir da lista de traços.
    Toda alteração da lista de traços notifica os ouvintes com
    `(is_empty, data_url)`, para o host habilitar ou desabilitar o envio.
    """

    def __init__(
        self,
        *,
        width: int | None = None,
        height: int | None = None,
        pen_color: str | None = None,
        pen_width: int | None = None,
        background: str | None = None,
        extractor: SignatureMetadataExtractor | None = None,
        device_context: Callable[[], DeviceContext | None] | None = None,
    ) -> None:
        self.width = width or settings.canvas_width
        self.height = height or settings.canvas_height
        self.pen_color = pen_color or settings.pen_color
        self.pen_width = pen_width or settings.pen_width
        self.background = background or settings.background_color
        self.disabled = False
        # CaptureError sobe daqui, uma única vez, se o ambiente não desenha
        self._surface = RasterSurface(self.width, self.height, self.background)
        self._extractor = extractor or SignatureMetadataExtractor()
        self._device_context = device_context
        self._strokes: List[Stroke] = []
        self._open: List[Point] | None = None
        self._listeners: List[ChangeListener] = []
        self._metadata = self._extractor.extract((), self._current_device())

    # ===============================================================
    # Estado
    # ===============================================================
    @property
    def strokes(self) -> tuple[Stroke, ...]:
        return tuple(self._strokes)

    @property
    def is_empty(self) -> bool:
        return not self._strokes

    @property
    def is_drawing(self) -> bool:
        return self._open is not None

    @property
    def metadata(self) -> SignatureMetadata:
        return self._metadata

    def capture(self) -> SignatureCapture:
        return SignatureCapture(strokes=self.strokes)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ===============================================================
    # Desenho
    # ===============================================================
    def begin(self, point: Point) -> None:
        if self.disabled:
            return
        if self._open is not None:
            self.end()
        self._open = [point]

    def extend(self, point: Point) -> None:
        if self.disabled or self._open is None:
            return
        previous = self._open[-1]
        self._open.append(point)
        self._surface.draw_segment(previous, point, self.pen_color, self.pen_width)

    def end(self) -> Stroke | None:
        if self._open is None:
            return None
        points, self._open = self._open, None
        if len(points) < 2:
            logger.debug("Discarding stroke with %d point(s)", len(points))
            return None
        stroke = Stroke(points=tuple(points), color=self.pen_color, width=self.pen_width)
        self._strokes.append(stroke)
        self._changed()
        return stroke

    def undo(self) -> Stroke | None:
        if not self._strokes:
            return None
        removed = self._strokes.pop()
        self._redraw()
        self._changed()
        return removed

    def clear(self) -> None:
        self._strokes.clear()
        self._open = None
        self._surface.reset()
        self._changed()

    # ===============================================================
    # Raster
    # ===============================================================
    def raster_png(self) -> bytes:
        return self._surface.to_png()

    def encoding(self) -> str | None:
        if self.is_empty:
            return None
        return to_data_url(self.raster_png())

    def render_sealed(self) -> bytes:
        """Raster somente dos traços selados, independente de um traço em andamento."""
        return render_strokes(self._strokes, (self.width, self.height), self.background)

    def save_png(self, path: str | Path) -> Path | None:
        if self.is_empty:
            return None
        target = Path(path)
        target.write_bytes(self.render_sealed())
        return target

    # ===============================================================
    # Internos
    # ===============================================================
    def _current_device(self) -> DeviceContext | None:
        return self._device_context() if self._device_context else None

    def _redraw(self) -> None:
        self._surface.reset()
        self._surface.draw_strokes(self._strokes)
        if self._open and len(self._open) >= 2:
            self._surface.draw_strokes(
                [Stroke(points=tuple(self._open), color=self.pen_color, width=self.pen_width)]
            )

    def _changed(self) -> None:
        self._metadata = self._extractor.extract(self._strokes, self._current_device())
        encoding = self.encoding()
        for listener in list(self._listeners):
            listener(self.is_empty, encoding)
