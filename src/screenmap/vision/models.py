"""Data models for the vision subsystem."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(slots=True)
class BoundingBox:
    """Axis-aligned rectangle (x_min, y_min, x_max, y_max) in pixel coordinates."""

    x_min: int
    y_min: int
    x_max: int
    y_max: int

    def width(self) -> int:
        """Width in pixels."""
        return self.x_max - self.x_min

    def height(self) -> int:
        """Height in pixels."""
        return self.y_max - self.y_min

    def area(self) -> int:
        """Area in square pixels (zero for degenerate boxes)."""
        return max(0, self.width()) * max(0, self.height())

    def as_tuple(self) -> tuple[int, int, int, int]:
        """Return bounding box as ``(x_min, y_min, x_max, y_max)`` tuple."""
        return self.x_min, self.y_min, self.x_max, self.y_max

    def to_dict(self) -> dict[str, int]:
        return {"x_min": self.x_min, "y_min": self.y_min, "x_max": self.x_max, "y_max": self.y_max}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BoundingBox":
        """Build a box from a ``{x_min, y_min, x_max, y_max}`` mapping.

        Raises ``KeyError``/``TypeError``/``ValueError`` when a coordinate is
        missing or not numeric.
        """
        return cls(
            x_min=int(round(float(data["x_min"]))),
            y_min=int(round(float(data["y_min"]))),
            x_max=int(round(float(data["x_max"]))),
            y_max=int(round(float(data["y_max"]))),
        )


@dataclass(slots=True)
class NormalizedBox:
    """Detector output: box coordinates as fractions of the image size."""

    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NormalizedBox":
        return cls(
            x_min=float(data["x_min"]),
            y_min=float(data["y_min"]),
            x_max=float(data["x_max"]),
            y_max=float(data["y_max"]),
        )
