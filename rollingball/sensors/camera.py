"""
Capture device service.

Reads the camera in the default executor and keeps only the newest frame;
the pipeline pulls it once per tick with ``take_new_frame``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import cv2
import numpy as np

from ..config import CameraSettings

logger = logging.getLogger(__name__)

CaptureFactory = Callable[[int], Any]


class CameraNotFoundError(RuntimeError):
    """No capture device matches the requested facing, or it failed to deliver frames."""


@dataclass
class CapturedFrame:
    """One frame from the capture device."""
    index: int
    timestamp: float
    image: np.ndarray

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) in pixels."""
        return int(self.image.shape[1]), int(self.image.shape[0])


def resolve_device_index(settings: CameraSettings) -> int:
    """Map the facing preference onto a configured OpenCV device index."""
    index = settings.front_device_index if settings.facing == "front" else settings.back_device_index
    if index is None:
        raise CameraNotFoundError(f"No {settings.facing}-facing camera configured")
    return index


class CameraService:
    """Camera reader publishing the latest frame to the tick loop."""

    def __init__(self, settings: Optional[CameraSettings] = None, *, capture_factory: Optional[CaptureFactory] = None):
        self.settings = settings or CameraSettings()
        self._capture_factory: CaptureFactory = capture_factory or cv2.VideoCapture
        self._cap: Any = None
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._first_frame = asyncio.Event()
        self._latest: Optional[CapturedFrame] = None
        self._consumed_index: int = -1
        self._frame_counter: int = 0

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def latest_frame(self) -> Optional[CapturedFrame]:
        return self._latest

    def open(self) -> None:
        """Open the device for the configured facing; raises CameraNotFoundError."""
        if self._cap is not None:
            return
        device_index = resolve_device_index(self.settings)
        logger.info("Opening %s-facing camera (device=%s)", self.settings.facing, device_index)

        cap = self._capture_factory(device_index)
        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            raise CameraNotFoundError(f"Failed to open {self.settings.facing}-facing camera {device_index}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.resolution_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.resolution_height)
        cap.set(cv2.CAP_PROP_FPS, self.settings.fps)
        self._cap = cap
        logger.info("Camera opened successfully")

    async def start(self) -> None:
        """Open the device and start the background capture loop."""
        if self._loop_task:
            return
        self.open()
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._capture_loop(), name="camera-capture-loop")
        logger.info("Camera service started")

    async def stop(self) -> None:
        if self._loop_task:
            self._stop_event.set()
            await self._loop_task
            self._loop_task = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        logger.info("Camera service stopped")

    async def wait_for_first_frame(self, timeout: Optional[float] = None) -> CapturedFrame:
        """Block until the device has delivered a frame; the only wait in the pipeline."""
        timeout = self.settings.first_frame_timeout_s if timeout is None else timeout
        try:
            await asyncio.wait_for(self._first_frame.wait(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise CameraNotFoundError(f"Camera delivered no frame within {timeout:.1f}s") from exc
        assert self._latest is not None
        return self._latest

    def take_new_frame(self) -> Optional[CapturedFrame]:
        """Return the newest frame if it has not been taken yet, else None."""
        frame = self._latest
        if frame is None or frame.index <= self._consumed_index:
            return None
        self._consumed_index = frame.index
        return frame

    def publish(self, image: np.ndarray) -> CapturedFrame:
        """Record a freshly read image as the newest frame."""
        self._frame_counter += 1
        frame = CapturedFrame(index=self._frame_counter, timestamp=time.time(), image=image)
        self._latest = frame
        self._first_frame.set()
        return frame

    def _read(self) -> Optional[np.ndarray]:
        if self._cap is None or not self._cap.isOpened():
            return None
        ret, image = self._cap.read()
        if not ret or image is None:
            return None
        return image

    async def _capture_loop(self) -> None:
        period = 1.0 / self.settings.fps
        loop = asyncio.get_running_loop()
        try:
            while not self._stop_event.is_set():
                image = await loop.run_in_executor(None, self._read)
                if image is not None:
                    self.publish(image)
                    await asyncio.sleep(0)
                else:
                    await asyncio.sleep(period)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Camera capture loop crashed")
        finally:
            self._stop_event.clear()
            logger.info("Camera capture loop stopped")


__all__ = ["CameraNotFoundError", "CameraService", "CapturedFrame", "resolve_device_index"]
