"""Screen-space preview: camera texture plus scanned shapes or live bodies."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import cv2
import numpy as np

from ..config import PreviewSettings
from ..physics.engine import PhysicsEngine, SimulatedBody
from ..state import SessionState
from .mapping import CoordinateMapper
from .shapes import ShapeSnapshot

logger = logging.getLogger(__name__)


def _pt(point: Sequence[float]) -> tuple[int, int]:
    return int(round(point[0])), int(round(point[1]))


class PreviewRenderer:
    """Draws what the display would show for one tick."""

    def __init__(self, mapper: CoordinateMapper, settings: Optional[PreviewSettings] = None) -> None:
        self.mapper = mapper
        self.settings = settings or PreviewSettings()
        self._size = (int(round(mapper.screen_width)), int(round(mapper.screen_height)))
        self._matrix = mapper.affine_matrix()

    def camera_texture(self, image: np.ndarray) -> np.ndarray:
        """Camera frame rotated and letterboxed into the screen canvas."""
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        elif image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        return cv2.warpAffine(image, self._matrix, self._size, flags=cv2.INTER_LINEAR)

    def draw_shapes(self, canvas: np.ndarray, snapshot: ShapeSnapshot) -> np.ndarray:
        """Filled squares for circles, segments for lines."""
        thickness = max(1, int(round(self.mapper.screen_pixels_per_image_pixel * 2)))
        for circle in snapshot.circles:
            half = 0.5 * circle.screen_diameter
            x, y = circle.screen_position
            cv2.rectangle(
                canvas,
                _pt((x - half, y - half)),
                _pt((x + half, y + half)),
                self.settings.circle_color,
                thickness=cv2.FILLED,
            )
        for line in snapshot.lines:
            cv2.line(
                canvas,
                _pt(line.screen_point0),
                _pt(line.screen_point1),
                self.settings.line_color,
                thickness,
                cv2.LINE_AA,
            )
        return canvas

    def draw_bodies(self, canvas: np.ndarray, engine: PhysicsEngine, bodies: Sequence[SimulatedBody]) -> np.ndarray:
        k = self.mapper.camera.world_units_per_screen_pixel
        color = self.settings.body_color
        for body in bodies:
            radius_px = max(1, int(round(engine.radius(body) / k)))
            if body.kind == "circle":
                center = self.mapper.world_to_screen(engine.position(body))
                cv2.circle(canvas, _pt(center), radius_px, color, cv2.FILLED, cv2.LINE_AA)
            else:
                start, end = engine.segment(body)
                cv2.line(
                    canvas,
                    _pt(self.mapper.world_to_screen(start)),
                    _pt(self.mapper.world_to_screen(end)),
                    color,
                    2 * radius_px,
                    cv2.LINE_AA,
                )
        return canvas

    def render(
        self,
        image: np.ndarray,
        state: SessionState,
        snapshot: ShapeSnapshot,
        *,
        engine: Optional[PhysicsEngine] = None,
        bodies: Sequence[SimulatedBody] = (),
    ) -> np.ndarray:
        canvas = self.camera_texture(image)
        if state is SessionState.SCANNING:
            return self.draw_shapes(canvas, snapshot)
        if engine is not None:
            return self.draw_bodies(canvas, engine, bodies)
        return canvas

    def encode_jpeg(self, canvas: np.ndarray) -> Optional[bytes]:
        ret, enc = cv2.imencode(".jpg", canvas, [cv2.IMWRITE_JPEG_QUALITY, self.settings.jpeg_quality])
        if not ret:
            logger.warning("Preview JPEG encode failed")
            return None
        return enc.tobytes()


__all__ = ["PreviewRenderer"]
