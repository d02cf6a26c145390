from __future__ import annotations

from typing import Dict, List, Tuple

import cv2
import numpy as np
import pytest

from rollingball.config import Settings
from rollingball.physics.engine import SimulatedBody
from rollingball.sensors.camera import CameraService
from rollingball.session_manager import SessionManager
from rollingball.vision.mapping import CoordinateMapper

CAPTURE_SIZE = (640, 480)
CIRCLE_CENTERS = ((200, 150), (420, 320))
CIRCLE_RADIUS = 15


class FakeEngine:
    """Records spawn/destroy calls instead of simulating."""

    def __init__(self) -> None:
        self.bodies: Dict[int, Tuple[str, tuple]] = {}
        self.destroyed: List[SimulatedBody] = []
        self.steps: List[Tuple[float, tuple]] = []
        self._next = 0

    def _add(self, kind: str, data: tuple) -> SimulatedBody:
        self._next += 1
        self.bodies[self._next] = (kind, data)
        return SimulatedBody(id=self._next, kind=kind)

    def spawn_circle(self, position, diameter):
        return self._add("circle", (tuple(position), diameter))

    def spawn_line(self, start, end, thickness):
        return self._add("line", (tuple(start), tuple(end), thickness))

    def destroy(self, body):
        del self.bodies[body.id]
        self.destroyed.append(body)

    def step(self, dt, gravity):
        self.steps.append((dt, tuple(gravity)))

    def position(self, body):
        kind, data = self.bodies[body.id]
        if kind == "circle":
            return data[0]
        start, end = data[0], data[1]
        return tuple(0.5 * (a + b) for a, b in zip(start, end))

    def segment(self, body):
        _, data = self.bodies[body.id]
        return data[0], data[1]

    def radius(self, body):
        kind, data = self.bodies[body.id]
        return 0.5 * (data[1] if kind == "circle" else data[2])


class FakeCapture:
    """Stand-in for cv2.VideoCapture."""

    def __init__(self, image=None, opened=True) -> None:
        self.image = image
        self.opened = opened
        self.released = False
        self.props: Dict[int, float] = {}

    def isOpened(self):
        return self.opened and not self.released

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def read(self):
        if self.image is None:
            return False, None
        return True, self.image.copy()

    def release(self):
        self.released = True


def make_black_frame(size=CAPTURE_SIZE) -> np.ndarray:
    return np.zeros((size[1], size[0], 3), dtype=np.uint8)


def make_circle_frame(size=CAPTURE_SIZE) -> np.ndarray:
    image = np.full((size[1], size[0], 3), 255, dtype=np.uint8)
    for center in CIRCLE_CENTERS:
        cv2.circle(image, center, CIRCLE_RADIUS, (0, 0, 0), thickness=-1)
    return image


def make_line_frame(size=CAPTURE_SIZE) -> np.ndarray:
    image = make_black_frame(size)
    cv2.line(image, (100, 240), (540, 240), (255, 255, 255), thickness=4)
    return image


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def mapper(settings) -> CoordinateMapper:
    return CoordinateMapper.from_settings(CAPTURE_SIZE, settings)


@pytest.fixture
def black_frame() -> np.ndarray:
    return make_black_frame()


@pytest.fixture
def circle_frame() -> np.ndarray:
    return make_circle_frame()


@pytest.fixture
def line_frame() -> np.ndarray:
    return make_line_frame()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def camera(settings) -> CameraService:
    return CameraService(settings.camera)


@pytest.fixture
def manager(settings, camera, fake_engine) -> SessionManager:
    mgr = SessionManager(settings=settings, camera=camera, engine=fake_engine)
    mgr.initialize(CAPTURE_SIZE)
    return mgr
