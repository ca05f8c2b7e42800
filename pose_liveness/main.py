"""
FastAPI application serving guided liveness verification over WebSocket
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware

from .config import VerificationConfig, config
from .exceptions import InvalidCommandError
from .models.data_models import VerificationEvent
from .services.frame_pipeline import FramePipeline, PoseDetector
from .services.pose_detector import MediaPipePoseDetector
from .services.verification_engine import VerificationEngine
from .services.websocket_handler import WebSocketHandler

logger = logging.getLogger(__name__)

API_TITLE = "Guided Pose Liveness API"
API_VERSION = "1.0.0"


def default_detector() -> PoseDetector:
    return MediaPipePoseDetector(
        model_path=config.MEDIAPIPE_MODEL_PATH,
        mirror=config.MIRROR_YAW
    )


async def _forward_events(
    websocket: WebSocket,
    handler: WebSocketHandler,
    queue: "asyncio.Queue[VerificationEvent]"
) -> None:
    while True:
        event = await queue.get()
        await handler.send_event(websocket, event)


async def _drive_timers(engine: VerificationEngine, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        engine.tick()


async def _dispatch(
    message: Dict[str, Any],
    websocket: WebSocket,
    handler: WebSocketHandler,
    engine: VerificationEngine,
    pipeline: FramePipeline
) -> None:
    """Apply one client message to the engine"""
    message_type = message["type"]

    if message_type == "video_frame":
        frame = handler.decode_frame(message)
        if frame is None:
            await handler.send_error(websocket, "Could not decode video frame")
            return
        pipeline.submit(frame)

    elif message_type == "preview_size":
        try:
            width = float(message["width"])
            height = float(message["height"])
        except (KeyError, TypeError, ValueError):
            await handler.send_error(websocket, "preview_size needs numeric width and height")
            return
        engine.set_preview_size(width, height)
        await handler.send_state(websocket, engine.state.value)

    elif message_type == "start":
        overrides = message.get("config") or {}
        try:
            session_config = engine.config.with_overrides(**overrides)
            engine.start(session_config)
        except (InvalidCommandError, ValueError, TypeError) as e:
            logger.warning(f"Rejected start command: {e}")
            await handler.send_error(websocket, str(e))

    elif message_type == "cancel":
        if not engine.cancel():
            await handler.send_state(websocket, engine.state.value)

    elif message_type == "reset":
        engine.reset()
        await handler.send_state(websocket, engine.state.value)


def create_app(
    detector_factory: Optional[Callable[[], PoseDetector]] = None,
    verification_config: Optional[VerificationConfig] = None,
    clock: Callable[[], float] = time.monotonic
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        detector_factory: Creates a pose detector per connection
            (MediaPipe by default)
        verification_config: Default session settings (from env by default)
        clock: Engine clock; must match the frame timestamps
    """
    app = FastAPI(title=API_TITLE, version=API_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    handler = WebSocketHandler(clock=clock)
    make_detector = detector_factory if detector_factory is not None else default_detector
    session_defaults = (
        verification_config if verification_config is not None
        else VerificationConfig.from_config()
    )

    @app.get("/")
    async def root():
        return {"message": API_TITLE, "status": "running", "version": API_VERSION}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "services": {
                "api": "operational",
                "engine": "operational",
            },
        }

    @app.websocket("/ws/verify")
    async def websocket_verify_endpoint(websocket: WebSocket):
        await handler.handle_connection(websocket)

        engine = VerificationEngine(config=session_defaults, clock=clock)
        queue: "asyncio.Queue[VerificationEvent]" = asyncio.Queue(maxsize=config.EVENT_QUEUE_SIZE)

        def enqueue(event: VerificationEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event queue full; dropping {event.type.value}")

        engine.subscribe(enqueue)
        pipeline: Optional[FramePipeline] = None
        tasks: List["asyncio.Task[None]"] = []

        try:
            pipeline = FramePipeline(engine, make_detector())
            pipeline.start()
            tasks = [
                asyncio.create_task(_forward_events(websocket, handler, queue)),
                asyncio.create_task(_drive_timers(engine, config.TICK_INTERVAL_MS / 1000.0)),
            ]
            while True:
                message = await handler.receive_message(websocket)
                if message is None:
                    continue
                await _dispatch(message, websocket, handler, engine, pipeline)
        except WebSocketDisconnect:
            logger.info("WebSocket disconnected")
        except Exception as e:
            logger.error(f"Verification connection failed: {e}", exc_info=True)
            await handler.close_connection(
                websocket, code=status.WS_1011_INTERNAL_ERROR, reason="Internal server error"
            )
        finally:
            engine.unsubscribe(enqueue)
            engine.cancel()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if pipeline is not None:
                await pipeline.stop()
                logger.info(
                    f"Connection closed: {pipeline.frames_processed} frames processed, "
                    f"{pipeline.frames_dropped} dropped, {pipeline.detection_errors} detection errors"
                )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
