from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from signproof.core.config import settings

DEFAULT_PRESSURE = 0.5


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Point:
    """Ponto amostrado em espaço lógico do canvas. Imutável depois de registrado."""

    x: float
    y: float
    pressure: float = DEFAULT_PRESSURE
    timestamp_ms: int = 0

    def __post_init__(self) -> None:
        if not 0.0 <= self.pressure <= 1.0:
            raise ValueError(f"pressure must be within [0, 1], got {self.pressure}")

    def as_dict(self) -> dict[str, float | int]:
        return {"x": self.x, "y": self.y, "pressure": self.pressure, "timestamp_ms": self.timestamp_ms}


class PointerKind(str, Enum):
    MOUSE = "mouse"
    TOUCH = "touch"
    PEN = "pen"


@dataclass(frozen=True)
class PointerEvent:
    """Evento bruto de ponteiro/toque, em pixels do cliente."""

    client_x: float
    client_y: float
    kind: PointerKind = PointerKind.MOUSE
    pressure: float | None = None
    timestamp_ms: int | None = None


@dataclass(frozen=True)
class CanvasGeometry:
    """Tamanho lógico do canvas e retângulo exibido (getBoundingClientRect)."""

    width: int
    height: int
    rect_left: float = 0.0
    rect_top: float = 0.0
    rect_width: float | None = None
    rect_height: float | None = None

    @property
    def scale_x(self) -> float:
        shown = self.rect_width or self.width
        return self.width / shown if shown else 1.0

    @property
    def scale_y(self) -> float:
        shown = self.rect_height or self.height
        return self.height / shown if shown else 1.0


class PointSource(Protocol):
    def to_point(self, event: PointerEvent) -> Point:
        ...


class PointSampler:
    """
    Converte eventos de mouse/caneta/toque em Point no espaço lógico do canvas.

    O zoom e o DPI alteram as coordenadas do cliente, por isso a conversão usa os
    fatores de escala entre o tamanho lógico e o retângulo exibido.
    """

    def __init__(
        self,
        geometry: CanvasGeometry,
        *,
        clock: Callable[[], int] = now_ms,
        default_pressure: float | None = None,
    ) -> None:
        self.geometry = geometry
        self._clock = clock
        self._default_pressure = (
            default_pressure if default_pressure is not None else settings.default_pressure
        )

    def resize(self, geometry: CanvasGeometry) -> None:
        self.geometry = geometry

    def _pressure(self, event: PointerEvent) -> float:
        # mouse nunca informa pressão real; toque sem "force" também cai no padrão
        if event.kind == PointerKind.MOUSE or not event.pressure:
            return self._default_pressure
        return min(1.0, max(0.0, float(event.pressure)))

    def to_point(self, event: PointerEvent) -> Point:
        geometry = self.geometry
        return Point(
            x=(event.client_x - geometry.rect_left) * geometry.scale_x,
            y=(event.client_y - geometry.rect_top) * geometry.scale_y,
            pressure=self._pressure(event),
            timestamp_ms=event.timestamp_ms if event.timestamp_ms is not None else self._clock(),
        )


@dataclass(frozen=True)
class Stroke:
    """Traço contínuo (pen-down até pen-up), selado e imutável."""

    points: tuple[Point, ...]
    color: str
    width: int

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("a sealed stroke needs at least one point")

    def as_dict(self) -> dict[str, object]:
        return {
            "color": self.color,
            "width": self.width,
            "points": [point.as_dict() for point in self.points],
        }
