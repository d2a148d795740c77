"""Shared fixtures.

- fake WebSocket transports (MagicMock with AsyncMock send/close)
- relay / registry wired without Redis
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from registry import RoomRegistry
from relay import SignalingRelay


def make_websocket():
    websocket = MagicMock()
    websocket.application_state = WebSocketState.CONNECTED
    websocket.client_state = WebSocketState.CONNECTED
    websocket.send_text = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


def sent(connection) -> list:
    """Decoded frames sent to a connection, oldest first."""
    return [json.loads(c.args[0]) for c in connection.websocket.send_text.call_args_list]


def sent_types(connection) -> list:
    return [m["type"] for m in sent(connection)]


@pytest.fixture
def registry():
    return RoomRegistry(max_participants=4)


@pytest.fixture
def relay(registry):
    return SignalingRelay(registry=registry)


@pytest.fixture
def connect(relay):
    """Open a connection on the relay backed by a fake transport."""

    def _connect():
        return relay.open(make_websocket())

    return _connect


@pytest.fixture
def join(relay):
    async def _join(connection, room_id="ABC123"):
        await relay.handle(connection, json.dumps({"type": "join", "roomId": room_id}))

    return _join
