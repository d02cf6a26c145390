"""Orientation (gravity) sensor sources and the world gravity model."""
from __future__ import annotations

import logging
import math
import time
from typing import Optional, Protocol, Sequence, Tuple

from ..config import PhysicsSettings

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]


class GravitySensor(Protocol):
    """Anything that can report the device gravity vector (units of g), or None."""

    def read(self) -> Optional[Vector3]: ...


class StaticGravitySensor:
    """Fixed gravity reading, for tabletop setups and tests."""

    def __init__(self, vector: Optional[Sequence[float]]) -> None:
        self._vector: Optional[Vector3] = None if vector is None else _as_vector(vector)

    def read(self) -> Optional[Vector3]:
        return self._vector


class PushedGravitySensor:
    """Latest vector posted by a remote client (e.g. a phone's accelerometer).

    Readings older than ``max_age_s`` are treated as absent.
    """

    def __init__(self, max_age_s: Optional[float] = 2.0) -> None:
        self.max_age_s = max_age_s
        self._vector: Optional[Vector3] = None
        self._updated_at: float = 0.0

    def update(self, vector: Sequence[float]) -> Vector3:
        self._vector = _as_vector(vector)
        self._updated_at = time.monotonic()
        return self._vector

    def clear(self) -> None:
        self._vector = None

    def read(self) -> Optional[Vector3]:
        if self._vector is None:
            return None
        if self.max_age_s is not None and time.monotonic() - self._updated_at > self.max_age_s:
            return None
        return self._vector


def _as_vector(values: Sequence[float]) -> Vector3:
    if len(values) != 3:
        raise ValueError(f"Gravity vector needs 3 components, got {len(values)}")
    x, y, z = (float(v) for v in values)
    if not all(math.isfinite(v) for v in (x, y, z)):
        raise ValueError("Gravity vector components must be finite")
    return (x, y, z)


class GravityModel:
    """Turns an optional device reading into the world gravity for one physics step."""

    def __init__(self, settings: Optional[PhysicsSettings] = None, sensor: Optional[GravitySensor] = None) -> None:
        self.settings = settings or PhysicsSettings()
        self.sensor = sensor
        self.magnitude = self.settings.gravity_magnitude * self.settings.gravity_scale

    def device_to_world(self, vector: Vector3) -> Vector3:
        # Device z points out of the screen, world z points into it
        x, y, z = vector
        return (x, y, -z)

    def current(self) -> Vector3:
        reading = self.sensor.read() if self.sensor is not None else None
        direction = self.settings.default_gravity if reading is None else self.device_to_world(reading)
        return (
            direction[0] * self.magnitude,
            direction[1] * self.magnitude,
            direction[2] * self.magnitude,
        )


__all__ = ["GravityModel", "GravitySensor", "PushedGravitySensor", "StaticGravitySensor", "Vector3"]
