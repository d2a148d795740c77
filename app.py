from contextlib import asynccontextmanager
from typing import Iterable, Optional
import time

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from auth import create_authenticator
from backend import RedisBackend, create_redis_backend
from connection import ConnectionState
from constants import (
    AUTH_MODE,
    AUTH_TOKENS,
    LOG_FILE,
    LOG_LEVEL,
    MAX_PARTICIPANTS,
    REDIS_ENABLED,
)
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from relay import SignalingRelay
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(
    max_participants: Optional[int] = MAX_PARTICIPANTS,
    auth_mode: str = AUTH_MODE,
    auth_tokens: Iterable[str] = AUTH_TOKENS,
    redis_backend: Optional[RedisBackend] = None,
) -> FastAPI:
    registry = RoomRegistry(max_participants=max_participants)
    relay = SignalingRelay(
        registry=registry,
        authenticator=create_authenticator(auth_mode, auth_tokens, redis_backend),
        presence=redis_backend,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if redis_backend:
            await redis_backend.connect()
        yield
        if redis_backend:
            await redis_backend.close()

    app = FastAPI(lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allow all HTTP methods
        allow_headers=["*"],  # Allow all headers
    )

    app.state.registry = registry
    app.state.relay = relay
    app.state.started_at = time.monotonic()

    app.include_router(rooms_router)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            status="ok",
            uptime=time.monotonic() - app.state.started_at,
            rooms=registry.room_count(),
            connections=len(relay.connections),
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
        """Signaling WebSocket.

        Query parameters:
        - token: Optional auth token, alternative to sending an "auth" message first
        """
        await websocket.accept()
        connection = relay.open(websocket)

        try:
            if token is not None and connection.state == ConnectionState.UNAUTHENTICATED:
                await relay.deliver(await relay.authenticate(connection, token))

            message_count = 0
            while connection.state != ConnectionState.CLOSED:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info(f"WebSocket disconnected normally for connection {connection.id}")
                    break
                data = message.get("text")
                if data is None:
                    logger.warning(f"Dropping binary frame from connection {connection.id}")
                    continue
                message_count += 1
                logger.debug(f"Received message #{message_count} from connection {connection.id}")
                await relay.handle(connection, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for connection {connection.id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection.id}: {e}", exc_info=True)
        finally:
            # Cleanup on disconnect, a no-op if the relay already closed it
            await relay.close(connection)
            await connection.close()

    logger.info("FastAPI application initialized")
    return app


app = create_app(redis_backend=create_redis_backend() if REDIS_ENABLED else None)
