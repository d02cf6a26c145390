"""FastAPI entry-point for the rollingball service."""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List

import psutil
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .logging_config import configure_logging
from .sensors.orientation import PushedGravitySensor
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

settings: Settings = get_settings()
configure_logging(
    settings.log_level,
    settings.log_directory,
    settings.log_retention_days,
    log_to_file=settings.log_to_file,
    library_level=settings.log_library_level,
)
app = FastAPI(title="rollingball", version="0.1.0")
manager = SessionManager(settings=settings)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Catch-all exception handler to prevent application crashes."""
    logger.exception("Unhandled exception in %s: %s", request.url.path, exc)
    return PlainTextResponse(
        f"Internal server error: {str(exc)}",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors gracefully."""
    logger.warning("Validation error in %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    try:
        await manager.start()
        if manager.init_error:
            logger.error("Application started in degraded mode: %s", manager.init_error)
        else:
            logger.info("Application started successfully")
    except Exception as e:
        logger.exception("Failed to start services: %s", e)
        logger.error("Application startup failed - detection disabled")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    try:
        await manager.stop()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.exception("Error during shutdown: %s", e)


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    payload = {"status": "ok" if manager.init_error is None else "degraded", **manager.status()}
    return JSONResponse(payload)


@app.get("/debug/performance")
async def debug_performance() -> JSONResponse:
    """Get real-time CPU and memory usage."""
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        memory = psutil.virtual_memory()

        return JSONResponse({
            "cpu_percent": round(cpu_percent, 1),
            "memory_percent": round(memory.percent, 1),
            "memory_used_mb": round(memory.used / (1024 * 1024), 1),
            "memory_total_mb": round(memory.total / (1024 * 1024), 1)
        })
    except Exception as e:
        logger.error("Performance monitoring error: %s", e)
        return JSONResponse(
            {"error": str(e)},
            status_code=500
        )


def _transition_response(changed: bool) -> JSONResponse:
    return JSONResponse({"changed": changed, **manager.status()})


@app.post("/simulation/start")
async def simulation_start() -> JSONResponse:
    if not manager.is_ready:
        return JSONResponse(
            {"status": "error", "message": manager.init_error or "Pipeline not initialized"},
            status_code=503,
        )
    return _transition_response(manager.start_simulation())


@app.post("/simulation/stop")
async def simulation_stop() -> JSONResponse:
    return _transition_response(manager.stop_simulation())


@app.post("/simulation/toggle")
async def simulation_toggle() -> JSONResponse:
    """The single Start/Stop Simulation control."""
    if not manager.is_ready:
        return JSONResponse(
            {"status": "error", "message": manager.init_error or "Pipeline not initialized"},
            status_code=503,
        )
    before = manager.state
    after = manager.toggle_simulation()
    return _transition_response(before is not after)


@app.get("/shapes")
async def shapes() -> JSONResponse:
    return JSONResponse({"state": manager.state.value, **manager.snapshot.to_dict()})


class GravityReading(BaseModel):
    vector: List[float] = Field(..., min_length=3, max_length=3)


@app.post("/sensors/gravity")
async def push_gravity(payload: GravityReading) -> JSONResponse:
    """Accept a device gravity reading (units of g) from a remote orientation sensor."""
    sensor = manager.gravity_sensor
    if not isinstance(sensor, PushedGravitySensor):
        return JSONResponse(
            {"status": "error", "message": "Gravity sensor does not accept pushed readings"},
            status_code=409,
        )
    try:
        vector = sensor.update(payload.vector)
    except ValueError as e:
        return JSONResponse({"status": "error", "message": str(e)}, status_code=400)
    return JSONResponse({"status": "ok", "vector": list(vector)})


@app.get("/preview")
async def preview_stream() -> StreamingResponse:
    """Stream the composed preview as MJPEG."""
    boundary = "frame"

    async def frame_iterator() -> AsyncIterator[bytes]:
        try:
            async for frame in manager.preview_stream():
                header = (
                    f"--{boundary}\r\n"
                    f"Content-Type: image/jpeg\r\n"
                    f"Content-Length: {len(frame)}\r\n\r\n"
                ).encode("ascii")
                yield header + frame + b"\r\n"
        except Exception as e:
            logger.error("Preview stream error: %s", e)

    media_type = f"multipart/x-mixed-replace; boundary={boundary}"
    return StreamingResponse(frame_iterator(), media_type=media_type)


@app.websocket("/ws/ui")
async def ui_socket(ws: WebSocket) -> None:
    await ws.accept()
    queue = manager.register_ui()
    try:
        await ws.send_json({"type": "state", "state": manager.state.value, "data": manager.status()})
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                break

            payload = {
                "type": event.type,
                "state": event.state.value,
                "data": event.data,
            }
            if event.error:
                payload["error"] = event.error

            try:
                await ws.send_json(payload)
            except Exception as e:
                logger.debug("WebSocket send failed (client disconnected): %s", e)
                break
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Unexpected error in UI websocket: %s", e)
    finally:
        manager.unregister_ui(queue)
        try:
            await ws.close()
        except Exception:
            pass
