"""Signaling relay: per-connection protocol state machine.

``dispatch`` decodes one inbound frame, applies its effect on the room
registry and returns the outbound actions it implies. ``deliver`` performs
them. Keeping the two apart lets the routing rules run against fake handles.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Union

import redis
from fastapi import WebSocket
from pydantic import ValidationError

from connection import Connection, ConnectionState
from logging_config import get_logger
from registry import RoomFullError, RoomRegistry
from schemas.messages import (
    RELAY_TYPES,
    AuthMessage,
    JoinMessage,
    LeaveMessage,
    MessageType,
    parse_message,
)

logger = get_logger(__name__)


@dataclass
class Outbound:
    recipients: List[Any]
    message: Dict[str, Any]


@dataclass
class CloseConnection:
    connection: Connection
    code: int = 1000
    reason: str = ""


Action = Union[Outbound, CloseConnection]


class SignalingRelay:
    def __init__(self, registry: RoomRegistry, authenticator=None, presence=None):
        self.registry = registry
        self.authenticator = authenticator
        self.presence = presence
        # Every live connection, joined or not, keyed by identity
        self.connections: Dict[str, Connection] = {}

    def open(self, websocket: WebSocket) -> Connection:
        """Register a freshly accepted WebSocket and assign its identity."""
        connection = Connection(websocket, authenticated=self.authenticator is None)
        self.connections[connection.id] = connection
        logger.info(f"Client connected: {connection.id}")
        return connection

    async def authenticate(self, connection: Connection, token: str) -> List[Action]:
        if connection.state != ConnectionState.UNAUTHENTICATED:
            logger.debug(f"Ignoring auth from already authenticated connection {connection.id}")
            return []
        if await self.authenticator.authenticate(token):
            connection.state = ConnectionState.UNJOINED
            logger.info(f"Connection {connection.id} authenticated")
            return [Outbound([connection], {"type": MessageType.AUTHENTICATED.value, "clientId": connection.id})]
        logger.warning(f"Connection {connection.id} rejected: invalid token")
        return [
            Outbound([connection], _error("unauthorized", "Invalid or expired token")),
            CloseConnection(connection, code=1008, reason="Unauthorized"),
        ]

    async def dispatch(self, connection: Connection, raw: str) -> List[Action]:
        if connection.state == ConnectionState.CLOSED:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Dropping non-JSON frame from connection {connection.id}: {e}")
            return []
        if not isinstance(data, dict):
            logger.warning(f"Dropping non-object frame from connection {connection.id}")
            return []

        try:
            message = parse_message(data)
        except ValidationError as e:
            logger.warning(f"Dropping malformed {data.get('type')!r} message from connection {connection.id}: {e.error_count()} validation error(s)")
            return []

        if connection.state == ConnectionState.UNAUTHENTICATED:
            if isinstance(message, AuthMessage):
                return await self.authenticate(connection, message.token)
            logger.debug(f"Dropping {message.type} from unauthenticated connection {connection.id}")
            return []

        msg_type = MessageType(message.type)
        logger.debug(f"Received {msg_type.value} from connection {connection.id}")

        if isinstance(message, JoinMessage):
            return await self._join(connection, message.room_id)
        if isinstance(message, LeaveMessage):
            return await self._leave(connection, message.room_id)
        if msg_type in RELAY_TYPES:
            return await self._relay(connection, message.target_id, data)
        if isinstance(message, AuthMessage):
            logger.debug(f"Ignoring auth from already authenticated connection {connection.id}")
        return []

    async def disconnect(self, connection: Connection) -> List[Action]:
        """Closed transition for a dropped transport, including a missed protocol pong. Idempotent."""
        if connection.state == ConnectionState.CLOSED:
            return []
        actions = []
        if connection.state == ConnectionState.JOINED:
            actions = await self._depart(connection)
        connection.state = ConnectionState.CLOSED
        self.connections.pop(connection.id, None)
        logger.info(f"Client disconnected: {connection.id}")
        return actions

    async def deliver(self, actions: List[Action]):
        for action in actions:
            if isinstance(action, CloseConnection):
                await self.close(action.connection)
                await action.connection.close(code=action.code, reason=action.reason)
                continue
            if not action.recipients:
                continue
            results = await asyncio.gather(
                *(recipient.send(action.message) for recipient in action.recipients),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"Failed to deliver {action.message.get('type')}: {result}")

    async def handle(self, connection: Connection, raw: str):
        await self.deliver(await self.dispatch(connection, raw))

    async def close(self, connection: Connection):
        await self.deliver(await self.disconnect(connection))

    async def _join(self, connection: Connection, room_id: str) -> List[Action]:
        previous_room = connection.room_id if connection.state == ConnectionState.JOINED else None
        rejoin = previous_room == room_id
        remaining: List[Any] = []

        try:
            if previous_room is not None and not rejoin:
                remaining, others = await self.registry.switch(previous_room, room_id, connection.id, connection)
            else:
                others = await self.registry.join(room_id, connection.id, connection)
        except RoomFullError as e:
            # A refused switch leaves the connection in its current room
            return [Outbound([connection], {
                **_error("room-full", str(e)),
                "roomId": room_id,
                "maxParticipants": e.max_participants,
            })]

        actions: List[Action] = []
        if previous_room is not None and not rejoin:
            actions.extend(await self._departed(connection, previous_room, remaining))

        connection.state = ConnectionState.JOINED
        connection.room_id = room_id
        await self._mirror("add_user_to_room", room_id, connection.id)
        logger.info(f"Client {connection.id} joined room {room_id}. Total participants: {len(others) + 1}")

        actions.append(Outbound([connection], {
            "type": MessageType.JOINED.value,
            "roomId": room_id,
            "clientId": connection.id,
            "participants": list(others.keys()),
        }))
        if not rejoin and others:
            actions.append(Outbound(list(others.values()), {
                "type": MessageType.PEER_JOINED.value,
                "clientId": connection.id,
            }))
        return actions

    async def _leave(self, connection: Connection, room_id: str) -> List[Action]:
        if connection.state != ConnectionState.JOINED:
            logger.debug(f"Ignoring leave from connection {connection.id} that is not in a room")
            return []
        if room_id != connection.room_id:
            logger.debug(f"Leave from {connection.id} names room {room_id} but it is in {connection.room_id}")
        actions = await self._depart(connection)
        connection.state = ConnectionState.UNJOINED
        return actions

    async def _depart(self, connection: Connection) -> List[Action]:
        room_id = connection.room_id
        remaining = await self.registry.leave(room_id, connection.id)
        connection.room_id = None
        return await self._departed(connection, room_id, remaining)

    async def _departed(self, connection: Connection, room_id: str, remaining: List[Any]) -> List[Action]:
        await self._mirror("remove_user_from_room", room_id, connection.id)
        if room_id not in self.registry:
            await self._mirror("delete_room", room_id)
        logger.info(f"Client {connection.id} left room {room_id}")
        if not remaining:
            return []
        return [Outbound(remaining, {"type": MessageType.PEER_LEFT.value, "clientId": connection.id})]

    async def _relay(self, connection: Connection, target_id: str, data: dict) -> List[Action]:
        if connection.state != ConnectionState.JOINED:
            logger.debug(f"Dropping {data['type']} from connection {connection.id} that is not in a room")
            return []
        target = await self.registry.route(connection.room_id, target_id)
        if target is None:
            logger.debug(f"Dropping {data['type']} from {connection.id}: target {target_id} not in room {connection.room_id}")
            return []
        # senderId always comes from the server, never from the client
        return [Outbound([target], {**data, "senderId": connection.id})]

    async def _mirror(self, method: str, *args):
        if self.presence is None:
            return
        try:
            await getattr(self.presence, method)(*args)
        except redis.RedisError as e:
            logger.error(f"Presence mirror {method} failed for {args}: {e}", exc_info=True)


def _error(code: str, message: str) -> dict:
    return {"type": MessageType.ERROR.value, "code": code, "message": message}
