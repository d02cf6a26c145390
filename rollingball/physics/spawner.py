"""Creates and tears down simulated bodies from a frozen shape snapshot."""
from __future__ import annotations

import logging
from typing import List, Tuple

from ..vision.mapping import CoordinateMapper
from ..vision.shapes import ShapeSnapshot
from .engine import PhysicsEngine, SimulatedBody

logger = logging.getLogger(__name__)


class SimulationSpawner:
    """Owns every body spawned for the current simulation session.

    Whether a session is active is tracked by the session manager, not here:
    a session started from zero detections legitimately owns zero bodies.
    """

    def __init__(self, engine: PhysicsEngine, mapper: CoordinateMapper, *, line_thickness_px: float) -> None:
        self.engine = engine
        self.mapper = mapper
        self.line_thickness_px = line_thickness_px
        self._objects: List[SimulatedBody] = []

    @property
    def objects(self) -> Tuple[SimulatedBody, ...]:
        return tuple(self._objects)

    def start_simulation(self, snapshot: ShapeSnapshot) -> int:
        """Spawn one body per circle and per line; returns the number spawned."""
        line_thickness = self.mapper.screen_length_to_world(self.line_thickness_px)
        spawned: List[SimulatedBody] = []
        for circle in snapshot.circles:
            diameter = self.mapper.screen_length_to_world(circle.screen_diameter)
            spawned.append(self.engine.spawn_circle(circle.world_position, diameter))
        for line in snapshot.lines:
            spawned.append(self.engine.spawn_line(line.world_point0, line.world_point1, line_thickness))
        self._objects.extend(spawned)
        logger.info(
            "Spawned %d bodies (%d circles, %d lines) from frame %d",
            len(spawned),
            len(snapshot.circles),
            len(snapshot.lines),
            snapshot.frame_index,
        )
        return len(spawned)

    def stop_simulation(self) -> int:
        """Destroy every recorded body; returns the number destroyed."""
        count = len(self._objects)
        for body in self._objects:
            self.engine.destroy(body)
        self._objects.clear()
        logger.info("Destroyed %d simulated bodies", count)
        return count


__all__ = ["SimulationSpawner"]
