"""In-memory room membership.

Format: {room_id: {connection_id: handle}}. All reads and writes go through
one asyncio.Lock so that "check size then join", "leave then snapshot the
remaining members" and "route" each see a consistent membership.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from logging_config import get_logger

logger = get_logger(__name__)


class RoomFullError(Exception):
    def __init__(self, room_id: str, max_participants: int):
        super().__init__(f"Room {room_id} is full ({max_participants} participants)")
        self.room_id = room_id
        self.max_participants = max_participants


class RoomRegistry:
    def __init__(self, max_participants: Optional[int] = None):
        # None or 0 means no ceiling
        self.max_participants = max_participants or None
        self._rooms: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    async def join(self, room_id: str, connection_id: str, handle: Any) -> Dict[str, Any]:
        """Add a connection to a room, creating the room on first join.

        Returns the other members present at the moment of joining, in join
        order. Re-joining with the same identity replaces the stored handle.
        Raises RoomFullError when the ceiling is already reached.
        """
        async with self._lock:
            self._check_capacity(room_id, connection_id)
            return self._insert(room_id, connection_id, handle)

    async def switch(self, from_room: str, to_room: str, connection_id: str, handle: Any) -> Tuple[List[Any], Dict[str, Any]]:
        """Move a connection between rooms in one step.

        The ceiling of the new room is checked before anything changes, so a
        refused switch leaves the connection where it was. Returns the handles
        left behind in the old room and the other members of the new one.
        """
        async with self._lock:
            self._check_capacity(to_room, connection_id)
            remaining = self._remove(from_room, connection_id)
            return remaining, self._insert(to_room, connection_id, handle)

    async def leave(self, room_id: str, connection_id: str) -> List[Any]:
        """Remove a connection from a room, deleting the room once it is empty.

        Returns the handles still in the room. Unknown rooms and identities are
        a no-op and return an empty list.
        """
        async with self._lock:
            return self._remove(room_id, connection_id)

    def _check_capacity(self, room_id: str, connection_id: str):
        room = self._rooms.get(room_id, {})
        if self.max_participants and connection_id not in room and len(room) >= self.max_participants:
            logger.info(f"Join rejected: room {room_id} is full ({len(room)}/{self.max_participants})")
            raise RoomFullError(room_id, self.max_participants)

    def _insert(self, room_id: str, connection_id: str, handle: Any) -> Dict[str, Any]:
        room = self._rooms.get(room_id)
        if room is None:
            room = self._rooms[room_id] = {}
            logger.info(f"Room {room_id} created")
        others = {cid: h for cid, h in room.items() if cid != connection_id}
        room[connection_id] = handle
        logger.debug(f"Added connection {connection_id} to room {room_id} (members: {len(room)})")
        return others

    def _remove(self, room_id: str, connection_id: str) -> List[Any]:
        room = self._rooms.get(room_id)
        if room is None or connection_id not in room:
            return []
        del room[connection_id]
        logger.debug(f"Removed connection {connection_id} from room {room_id} (members: {len(room)})")
        if not room:
            del self._rooms[room_id]
            logger.info(f"Room {room_id} deleted (empty)")
            return []
        return list(room.values())

    async def route(self, room_id: str, target_id: str) -> Optional[Any]:
        async with self._lock:
            return self._rooms.get(room_id, {}).get(target_id)

    async def broadcast(self, room_id: str, exclude_id: Optional[str] = None) -> List[Any]:
        async with self._lock:
            room = self._rooms.get(room_id, {})
            return [h for cid, h in room.items() if cid != exclude_id]

    async def members(self, room_id: str) -> List[str]:
        async with self._lock:
            return list(self._rooms.get(room_id, {}).keys())

    def room_count(self) -> int:
        return len(self._rooms)

    def connection_count(self) -> int:
        return sum(len(room) for room in self._rooms.values())
