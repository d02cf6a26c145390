"""Immutable shape records produced by the detection pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

Point2 = Tuple[float, float]
Point3 = Tuple[float, float, float]


@dataclass(frozen=True)
class DetectedCircle:
    """A blob from one frame, in screen and world space."""

    screen_position: Point2
    screen_diameter: float
    world_position: Point3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screen_position": list(self.screen_position),
            "screen_diameter": self.screen_diameter,
            "world_position": list(self.world_position),
        }


@dataclass(frozen=True)
class DetectedLine:
    """A Hough segment from one frame, in screen and world space."""

    screen_point0: Point2
    screen_point1: Point2
    world_point0: Point3
    world_point1: Point3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screen_point0": list(self.screen_point0),
            "screen_point1": list(self.screen_point1),
            "world_point0": list(self.world_point0),
            "world_point1": list(self.world_point1),
        }


@dataclass(frozen=True)
class ShapeSnapshot:
    """Read-only view of one tick's detections.

    Handed to both the spawner and the preview renderer; a new snapshot
    replaces the old one on every scanning tick.
    """

    circles: Tuple[DetectedCircle, ...] = field(default_factory=tuple)
    lines: Tuple[DetectedLine, ...] = field(default_factory=tuple)
    frame_index: int = -1

    @property
    def shape_count(self) -> int:
        return len(self.circles) + len(self.lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame_index": self.frame_index,
            "circles": [c.to_dict() for c in self.circles],
            "lines": [line.to_dict() for line in self.lines],
        }


EMPTY_SNAPSHOT = ShapeSnapshot()


__all__ = ["Point2", "Point3", "DetectedCircle", "DetectedLine", "ShapeSnapshot", "EMPTY_SNAPSHOT"]
