"""Scanning/simulating session orchestration for the rollingball pipeline."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .config import Settings, get_settings
from .physics.engine import PhysicsEngine, PymunkEngine, SimulatedBody
from .physics.spawner import SimulationSpawner
from .sensors.camera import CameraNotFoundError, CameraService, CapturedFrame
from .sensors.orientation import GravityModel, GravitySensor, PushedGravitySensor
from .state import SessionEvent, SessionState
from .vision.extractor import DetectorConfigError, ShapeExtractor
from .vision.mapping import CoordinateMapper
from .vision.preprocess import FramePreprocessor
from .vision.preview import PreviewRenderer
from .vision.shapes import EMPTY_SNAPSHOT, ShapeSnapshot

logger = logging.getLogger(__name__)


class SessionManager:
    """Coordinates the camera, detection pipeline, spawner and UI updates.

    State machine:
        SCANNING   --start_simulation-->  SIMULATING
        SIMULATING --stop_simulation--->  SCANNING
    Any other trigger is a no-op.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        camera: Optional[CameraService] = None,
        engine: Optional[PhysicsEngine] = None,
        gravity_sensor: Optional[GravitySensor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._camera = camera or CameraService(self.settings.camera)
        self._engine: PhysicsEngine = engine or PymunkEngine(self.settings.physics)
        self.gravity_sensor = gravity_sensor if gravity_sensor is not None else PushedGravitySensor()
        self._gravity = GravityModel(self.settings.physics, self.gravity_sensor)
        self._preprocessor = FramePreprocessor(self.settings.preprocess)
        self._step_dt = self.settings.physics.step_dt or 1.0 / self.settings.tick_hz

        self._state: SessionState = SessionState.SCANNING
        self._snapshot: ShapeSnapshot = EMPTY_SNAPSHOT

        # Built once the first frame fixes the capture size
        self._mapper: Optional[CoordinateMapper] = None
        self._extractor: Optional[ShapeExtractor] = None
        self._spawner: Optional[SimulationSpawner] = None
        self._renderer: Optional[PreviewRenderer] = None
        self._init_error: Optional[str] = None

        self._ui_subscribers: List[asyncio.Queue[SessionEvent]] = []
        self._preview_subscribers: List[asyncio.Queue[bytes]] = []
        self._tick_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def snapshot(self) -> ShapeSnapshot:
        """Latest detections; frozen while simulating."""
        return self._snapshot

    @property
    def objects(self) -> Tuple[SimulatedBody, ...]:
        return self._spawner.objects if self._spawner else ()

    @property
    def mapper(self) -> Optional[CoordinateMapper]:
        return self._mapper

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error

    @property
    def is_ready(self) -> bool:
        return self._extractor is not None and self._init_error is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, capture_size: Tuple[int, int]) -> None:
        """Build the size-dependent stages. Raises DetectorConfigError."""
        mapper = CoordinateMapper.from_settings(capture_size, self.settings)
        extractor = ShapeExtractor(
            mapper,
            detector_settings=self.settings.detector,
            line_settings=self.settings.lines,
        )
        self._mapper = mapper
        self._extractor = extractor
        self._spawner = SimulationSpawner(
            self._engine, mapper, line_thickness_px=self.settings.physics.line_thickness_px
        )
        self._renderer = PreviewRenderer(mapper, self.settings.preview)
        self._init_error = None
        logger.info(
            "Pipeline initialized for %dx%d capture (%.3f screen px per image px)",
            capture_size[0],
            capture_size[1],
            mapper.screen_pixels_per_image_pixel,
        )

    async def start(self) -> None:
        logger.info("Starting session manager")
        try:
            logger.info("🎥 [STARTUP] Starting camera service...")
            await self._camera.start()
            first = await self._camera.wait_for_first_frame()
            logger.info("🎥 [STARTUP] First frame received (%dx%d)", *first.size)
            self.initialize(first.size)
        except (CameraNotFoundError, DetectorConfigError) as exc:
            self._init_error = str(exc)
            logger.error("❌ [STARTUP] Pipeline disabled: %s", exc)
            try:
                await self._camera.stop()
            except Exception as stop_exc:
                logger.warning("Error stopping camera after failed startup: %s", stop_exc)
            self._broadcast(SessionEvent(type="error", data={}, state=self._state, error=self._init_error))
            return

        self._stop_event.clear()
        self._tick_task = asyncio.create_task(self._tick_loop(), name="pipeline-tick")
        logger.info("Session manager started in SCANNING state")

    async def stop(self) -> None:
        logger.info("Stopping session manager")
        if self._tick_task:
            self._stop_event.set()
            try:
                await self._tick_task
            except Exception as e:
                logger.warning("Error stopping tick loop: %s", e)
            self._tick_task = None

        self.stop_simulation()

        try:
            await self._camera.stop()
        except Exception as e:
            logger.warning("Error stopping camera service: %s", e)
        logger.info("Session manager stopped")

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def start_simulation(self) -> bool:
        """Freeze the current shapes and spawn bodies from them."""
        if self._state is SessionState.SIMULATING:
            logger.debug("start_simulation ignored: already simulating")
            return False
        if self._spawner is None:
            logger.warning("start_simulation ignored: pipeline not initialized")
            return False

        frozen = self._snapshot
        count = self._spawner.start_simulation(frozen)
        self._state = SessionState.SIMULATING
        logger.info("▶️ Simulation started with %d bodies", count)
        self._broadcast(
            SessionEvent(
                type="state",
                state=self._state,
                data={"bodies": count, "circles": len(frozen.circles), "lines": len(frozen.lines)},
            )
        )
        return True

    def stop_simulation(self) -> bool:
        """Destroy all bodies and resume scanning on the next tick."""
        if self._state is SessionState.SCANNING:
            logger.debug("stop_simulation ignored: already scanning")
            return False

        destroyed = self._spawner.stop_simulation() if self._spawner else 0
        self._state = SessionState.SCANNING
        logger.info("⏹️ Simulation stopped (%d bodies destroyed)", destroyed)
        self._broadcast(SessionEvent(type="state", state=self._state, data={"destroyed": destroyed}))
        return True

    def toggle_simulation(self) -> SessionState:
        if self._state is SessionState.SCANNING:
            self.start_simulation()
        else:
            self.stop_simulation()
        return self._state

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def detect(self, frame: CapturedFrame) -> ShapeSnapshot:
        """Preprocess, then circles, then lines, all from this one frame."""
        assert self._extractor is not None
        pre = self._preprocessor.process(frame.image)
        circles = self._extractor.extract_circles(pre.gray)
        lines = self._extractor.extract_lines(pre.edges)
        return ShapeSnapshot(circles=circles, lines=lines, frame_index=frame.index)

    def tick(self, dt: Optional[float] = None) -> bool:
        """Run one pipeline tick; returns True if a new frame was processed."""
        if not self.is_ready:
            return False

        if self._state is SessionState.SIMULATING:
            self._engine.step(self._step_dt if dt is None else dt, self._gravity.current())

        frame = self._camera.take_new_frame()
        if frame is None:
            return False

        if self._state is SessionState.SCANNING:
            previous = self._snapshot
            self._snapshot = self.detect(frame)
            if (len(previous.circles), len(previous.lines)) != (
                len(self._snapshot.circles),
                len(self._snapshot.lines),
            ):
                self._broadcast(
                    SessionEvent(
                        type="shapes",
                        state=self._state,
                        data={"circles": len(self._snapshot.circles), "lines": len(self._snapshot.lines)},
                    )
                )

        if self._preview_subscribers:
            self._publish_preview(frame)
        return True

    async def _tick_loop(self) -> None:
        period = 1.0 / self.settings.tick_hz
        try:
            while not self._stop_event.is_set():
                try:
                    self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # A bad frame or physics step only costs this tick
                    logger.exception("Pipeline tick failed; retrying next tick")
                await asyncio.sleep(period)
        finally:
            self._stop_event.clear()
            logger.info("Pipeline tick loop stopped")

    # ------------------------------------------------------------------
    # Preview & UI events
    # ------------------------------------------------------------------

    def render_preview(self, frame: CapturedFrame) -> Optional[bytes]:
        if self._renderer is None:
            return None
        canvas = self._renderer.render(
            frame.image,
            self._state,
            self._snapshot,
            engine=self._engine,
            bodies=self.objects,
        )
        return self._renderer.encode_jpeg(canvas)

    def _publish_preview(self, frame: CapturedFrame) -> None:
        jpeg = self.render_preview(frame)
        if jpeg is None:
            return
        for q in list(self._preview_subscribers):
            if q.full():
                try:
                    q.get_nowait()
                except QueueEmpty:
                    pass
            q.put_nowait(jpeg)

    async def preview_stream(self) -> AsyncIterator[bytes]:
        """Stream preview JPEG frames."""
        q: asyncio.Queue[bytes] = asyncio.Queue(maxsize=self.settings.preview.queue_size)
        self._preview_subscribers.append(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._preview_subscribers.remove(q)

    def register_ui(self) -> asyncio.Queue[SessionEvent]:
        queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=self.settings.preview.ui_event_queue_size)
        self._ui_subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[SessionEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    def _broadcast(self, event: SessionEvent) -> None:
        """Broadcast event to all UI subscribers, dropping the oldest when full."""
        for queue in list(self._ui_subscribers):
            try:
                if queue.full():
                    try:
                        queue.get_nowait()
                    except QueueEmpty:
                        pass
                queue.put_nowait(event)
            except Exception as e:
                logger.warning("Failed to broadcast event to subscriber: %s", e)

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "toggle_label": self._state.toggle_label,
            "ready": self.is_ready,
            "error": self._init_error,
            "circles": len(self._snapshot.circles),
            "lines": len(self._snapshot.lines),
            "bodies": len(self.objects),
        }


__all__ = ["SessionManager"]
