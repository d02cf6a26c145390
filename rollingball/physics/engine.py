"""Rigid-body simulator adapter.

The rest of the pipeline only sees ``PhysicsEngine``: spawn requests go in,
opaque ``SimulatedBody`` handles come out, and gravity is an explicit argument
to every ``step`` call instead of process-wide state.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

import pymunk

from ..config import PhysicsSettings
from ..vision.shapes import Point3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedBody:
    """Opaque handle for one spawned body."""
    id: int
    kind: str  # "circle" or "line"


class PhysicsEngine(Protocol):
    def spawn_circle(self, position: Point3, diameter: float) -> SimulatedBody: ...

    def spawn_line(self, start: Point3, end: Point3, thickness: float) -> SimulatedBody: ...

    def destroy(self, body: SimulatedBody) -> None: ...

    def step(self, dt: float, gravity: Point3) -> None: ...

    def position(self, body: SimulatedBody) -> Point3: ...

    def segment(self, body: SimulatedBody) -> Tuple[Point3, Point3]: ...

    def radius(self, body: SimulatedBody) -> float: ...


@dataclass
class _Entry:
    body: Optional[pymunk.Body]
    shape: pymunk.Shape
    depth: float
    radius: float


class PymunkEngine:
    """pymunk-backed simulator working in the world x/y plane.

    Circles are dynamic bodies, lines are static segments. The world z of each
    spawn is kept so positions round-trip as 3D points.
    """

    def __init__(self, settings: Optional[PhysicsSettings] = None) -> None:
        self.settings = settings or PhysicsSettings()
        self.space = pymunk.Space()
        self._entries: Dict[int, _Entry] = {}
        self._ids = itertools.count(1)

    @property
    def body_count(self) -> int:
        return len(self._entries)

    def spawn_circle(self, position: Point3, diameter: float) -> SimulatedBody:
        radius = max(float(diameter) * 0.5, 1e-3)
        mass = self.settings.circle_mass
        body = pymunk.Body(mass, pymunk.moment_for_circle(mass, 0.0, radius))
        body.position = (float(position[0]), float(position[1]))
        shape = pymunk.Circle(body, radius)
        shape.elasticity = self.settings.circle_elasticity
        shape.friction = self.settings.friction
        self.space.add(body, shape)
        return self._register(_Entry(body=body, shape=shape, depth=float(position[2]), radius=radius), "circle")

    def spawn_line(self, start: Point3, end: Point3, thickness: float) -> SimulatedBody:
        radius = max(float(thickness) * 0.5, 1e-3)
        shape = pymunk.Segment(
            self.space.static_body,
            (float(start[0]), float(start[1])),
            (float(end[0]), float(end[1])),
            radius,
        )
        shape.elasticity = self.settings.circle_elasticity
        shape.friction = self.settings.friction
        self.space.add(shape)
        depth = 0.5 * (float(start[2]) + float(end[2]))
        return self._register(_Entry(body=None, shape=shape, depth=depth, radius=radius), "line")

    def _register(self, entry: _Entry, kind: str) -> SimulatedBody:
        handle = SimulatedBody(id=next(self._ids), kind=kind)
        self._entries[handle.id] = entry
        return handle

    def destroy(self, body: SimulatedBody) -> None:
        entry = self._entries.pop(body.id)
        if entry.body is not None:
            self.space.remove(entry.body, entry.shape)
        else:
            self.space.remove(entry.shape)

    def step(self, dt: float, gravity: Point3) -> None:
        self.space.gravity = (float(gravity[0]), float(gravity[1]))
        self.space.step(float(dt))

    def position(self, body: SimulatedBody) -> Point3:
        entry = self._entries[body.id]
        if entry.body is not None:
            p = entry.body.position
            return (float(p.x), float(p.y), entry.depth)
        a, b = entry.shape.a, entry.shape.b
        return (0.5 * (a.x + b.x), 0.5 * (a.y + b.y), entry.depth)

    def segment(self, body: SimulatedBody) -> Tuple[Point3, Point3]:
        """Endpoints of a line body."""
        entry = self._entries[body.id]
        a, b = entry.shape.a, entry.shape.b
        return (float(a.x), float(a.y), entry.depth), (float(b.x), float(b.y), entry.depth)

    def radius(self, body: SimulatedBody) -> float:
        return self._entries[body.id].radius


__all__ = ["PhysicsEngine", "PymunkEngine", "SimulatedBody"]
