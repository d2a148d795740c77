import json
import uuid
from enum import Enum
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class Connection:
    """One accepted WebSocket and the relay's per-connection state.

    The connection's own task owns the transport. Registries only hold a
    reference for routing and must drop it when the connection leaves.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None, authenticated: bool = True):
        self.websocket = websocket
        self.id = connection_id or str(uuid.uuid4())
        self.room_id: Optional[str] = None
        self.state = ConnectionState.UNJOINED if authenticated else ConnectionState.UNAUTHENTICATED

    def __repr__(self):
        return f"Connection(id={self.id!r}, state={self.state.value}, room={self.room_id!r})"

    @property
    def writable(self) -> bool:
        return (
            self.state != ConnectionState.CLOSED
            and self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        )

    async def send(self, message: dict) -> bool:
        """Send one JSON frame. A closed or failing transport is skipped, never retried."""
        if not self.writable:
            logger.debug(f"Skipping send of {message.get('type')} to unwritable connection {self.id}")
            return False
        try:
            await self.websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning(f"Error sending {message.get('type')} to connection {self.id}: {e}")
            return False

    async def close(self, code: int = 1000, reason: str = ""):
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing WebSocket for connection {self.id}: {e}")
