import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from connection import WebSocketConnection
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from session import SessionCoordinator, build_coordinator

logger = get_logger(__name__)


def create_app(coordinator: Optional[SessionCoordinator] = None) -> FastAPI:
    coordinator = coordinator or build_coordinator()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Probe once; sessions never re-probe
        await coordinator.pipeline.probe()
        languages_task = asyncio.create_task(coordinator.pipeline.load_languages())
        yield
        languages_task.cancel()
        try:
            await languages_task
        except asyncio.CancelledError:
            pass
        await coordinator.close_evicted()
        coordinator.pipeline.stop_all()
        logger.info("Stopped all transcription sessions")

    app = FastAPI(title="Live Rooms", lifespan=lifespan)
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(rooms_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """One connection per participant.

        Text frames are JSON ``{"type": ..., "data": {...}}``; binary frames are
        audio chunks for the connection's own transcription session.
        """
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        connection.start()
        session = coordinator.open_session(connection)
        message_count = 0
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
                    break
                message_count += 1
                if message.get("text") is not None:
                    await session.handle_text(message["text"])
                elif message.get("bytes") is not None:
                    await session.handle_bytes(message["bytes"])
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for connection {connection.connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
        finally:
            logger.debug(f"Connection {connection.connection_id} handled {message_count} messages")
            session.close()
            await connection.close()

    logger.info("FastAPI application initialized")
    return app


setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
app = create_app()
