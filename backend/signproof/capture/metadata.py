from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from signproof.capture.device import DeviceContext
from signproof.capture.points import Stroke


@dataclass(frozen=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def empty(cls) -> "BoundingBox":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.width == 0 and self.height == 0 and self.x == 0 and self.y == 0

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class SignatureMetadata:
    stroke_count: int = 0
    total_points: int = 0
    bounding_box: BoundingBox = field(default_factory=BoundingBox.empty)
    duration_ms: int = 0
    captured_at: Optional[datetime] = None
    device_context: Optional[DeviceContext] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "stroke_count": self.stroke_count,
            "total_points": self.total_points,
            "bounding_box": self.bounding_box.as_dict(),
            "duration_ms": self.duration_ms,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "device_context": self.device_context.as_dict() if self.device_context else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignatureMetadataExtractor:
    """
    Deriva metadados comportamentais da lista de traços selados.

    duration_ms é o tempo de relógio entre o primeiro e o último ponto, pausas
    incluídas. Assinaturas instantâneas ficam visíveis para revisão, mas nenhum
    limite é aplicado aqui: o valor é apenas informativo.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def extract(
        self,
        strokes: Sequence[Stroke],
        device_context: DeviceContext | None = None,
    ) -> SignatureMetadata:
        if not strokes:
            return SignatureMetadata(device_context=device_context)

        points = [point for stroke in strokes for point in stroke.points]
        xs = [point.x for point in points]
        ys = [point.y for point in points]
        timestamps = [point.timestamp_ms for point in points]
        min_x, min_y = min(xs), min(ys)

        return SignatureMetadata(
            stroke_count=len(strokes),
            total_points=len(points),
            bounding_box=BoundingBox(
                x=min_x,
                y=min_y,
                width=max(xs) - min_x,
                height=max(ys) - min_y,
            ),
            duration_ms=max(0, max(timestamps) - min(timestamps)),
            captured_at=self._clock(),
            device_context=device_context,
        )
