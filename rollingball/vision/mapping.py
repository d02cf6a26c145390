"""Image / screen / world coordinate conversions.

Image space is the captured frame (origin top-left, y down). Screen space is
the display (origin top-left, y down). World space is the simulation (y up),
viewed by an orthographic camera at the origin looking down +z.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from ..config import MountingSettings, Settings
from .shapes import Point2, Point3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrthographicCamera:
    """Orthographic view covering the whole screen."""

    viewport_width: float
    viewport_height: float
    orthographic_size: float
    near: float
    far: float

    @property
    def world_units_per_screen_pixel(self) -> float:
        return 2.0 * self.orthographic_size / self.viewport_height


class CoordinateMapper:
    """Pure conversions between image, screen and world coordinates.

    Everything is fixed at construction from the capture and screen sizes,
    so one instance is built when the first frame arrives and reused for
    the whole run.
    """

    def __init__(
        self,
        *,
        capture_width: int,
        capture_height: int,
        screen_width: float,
        screen_height: float,
        mounting: MountingSettings | None = None,
    ) -> None:
        if capture_width <= 0 or capture_height <= 0:
            raise ValueError(f"Invalid capture size {capture_width}x{capture_height}")
        self.capture_width = int(capture_width)
        self.capture_height = int(capture_height)
        self.screen_width = float(screen_width)
        self.screen_height = float(screen_height)
        self.mounting = mounting or MountingSettings()

        # Image extent after the mounting rotation, in screen axis order
        if self.mounting.swap_axes:
            self._rotated_width, self._rotated_height = self.capture_height, self.capture_width
        else:
            self._rotated_width, self._rotated_height = self.capture_width, self.capture_height

        self.screen_pixels_per_image_pixel = self.screen_width / self._rotated_width
        self.screen_pixels_y_offset = 0.5 * (
            self.screen_height - self.screen_pixels_per_image_pixel * self._rotated_height
        )

        self.raycast_distance = 0.5 * self.capture_width
        capture_diagonal = math.hypot(self.capture_width, self.capture_height)
        self.camera = OrthographicCamera(
            viewport_width=self.screen_width,
            viewport_height=self.screen_height,
            orthographic_size=0.5 * capture_diagonal,
            near=0.5 * self.raycast_distance,
            far=2.0 * self.raycast_distance,
        )
        logger.debug(
            "Mapper ready: capture=%dx%d screen=%.0fx%.0f scale=%.4f y_offset=%.2f raycast=%.1f",
            self.capture_width,
            self.capture_height,
            self.screen_width,
            self.screen_height,
            self.screen_pixels_per_image_pixel,
            self.screen_pixels_y_offset,
            self.raycast_distance,
        )

    @classmethod
    def from_settings(cls, capture_size: Tuple[int, int], settings: Settings) -> "CoordinateMapper":
        width, height = capture_size
        return cls(
            capture_width=width,
            capture_height=height,
            screen_width=settings.screen.width,
            screen_height=settings.screen.height,
            mounting=settings.mounting,
        )

    # ------------------------------------------------------------------
    # image <-> screen
    # ------------------------------------------------------------------

    def image_to_screen(self, image_x: float, image_y: float) -> Point2:
        if self.mounting.swap_axes:
            u, v = float(image_y), float(image_x)
        else:
            u, v = float(image_x), float(image_y)
        if self.mounting.flip_x:
            u = self._rotated_width - u
        if self.mounting.flip_y:
            v = self._rotated_height - v
        scale = self.screen_pixels_per_image_pixel
        return (scale * u, scale * v + self.screen_pixels_y_offset)

    def screen_to_image(self, screen_x: float, screen_y: float) -> Point2:
        scale = self.screen_pixels_per_image_pixel
        u = float(screen_x) / scale
        v = (float(screen_y) - self.screen_pixels_y_offset) / scale
        if self.mounting.flip_x:
            u = self._rotated_width - u
        if self.mounting.flip_y:
            v = self._rotated_height - v
        if self.mounting.swap_axes:
            return (v, u)
        return (u, v)

    def affine_matrix(self) -> np.ndarray:
        """2x3 matrix M with ``screen = M @ (x, y, 1)``, usable by cv2.warpAffine."""
        ox, oy = self.image_to_screen(0.0, 0.0)
        ax, ay = self.image_to_screen(1.0, 0.0)
        bx, by = self.image_to_screen(0.0, 1.0)
        return np.array(
            [[ax - ox, bx - ox, ox], [ay - oy, by - oy, oy]],
            dtype=np.float64,
        )

    # ------------------------------------------------------------------
    # screen <-> world
    # ------------------------------------------------------------------

    def screen_to_world(self, screen_position: Sequence[float]) -> Point3:
        """Point at ``raycast_distance`` along the view ray through ``screen_position``."""
        k = self.camera.world_units_per_screen_pixel
        sx, sy = float(screen_position[0]), float(screen_position[1])
        origin_x = (sx - 0.5 * self.screen_width) * k
        origin_y = (0.5 * self.screen_height - sy) * k
        # Orthographic rays are parallel to +z
        return (origin_x, origin_y, self.raycast_distance)

    def world_to_screen(self, world_position: Sequence[float]) -> Point2:
        k = self.camera.world_units_per_screen_pixel
        return (
            float(world_position[0]) / k + 0.5 * self.screen_width,
            0.5 * self.screen_height - float(world_position[1]) / k,
        )

    def screen_length_to_world(self, length: float) -> float:
        return float(length) * self.camera.world_units_per_screen_pixel

    def image_to_world(self, image_x: float, image_y: float) -> Tuple[Point2, Point3]:
        screen = self.image_to_screen(image_x, image_y)
        return screen, self.screen_to_world(screen)


__all__ = ["CoordinateMapper", "OrthographicCamera"]
