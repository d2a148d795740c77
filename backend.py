import json
from datetime import datetime

import redis.asyncio as redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, PRESENCE_TTL
from redis_keys import REDIS_USERS_KEY, REDIS_CONN_KEY, REDIS_TOKEN_KEY
from logging_config import get_logger

logger = get_logger(__name__)


class RedisBackend:
    """Mirrors room membership into Redis and answers token lookups.

    The in-process RoomRegistry stays the source of truth for routing. The
    mirror exists so the external balance service can see who is in a call.
    All calls go through the asyncio client so a slow Redis only delays the
    connection that issued the call.
    """

    def __init__(self, redis_client: redis.Redis, ttl: int = PRESENCE_TTL):
        self.redis_client = redis_client
        self.ttl = ttl

    async def connect(self):
        try:
            # Test connection
            await self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise

    async def close(self):
        await self.redis_client.aclose()

    async def add_user_to_room(self, room_id: str, connection_id: str, user_data: dict = None):
        """Add a connection to a room's mirrored member set."""
        logger.debug(f"Mirroring join of {connection_id} to room {room_id}")
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        conn_key = REDIS_CONN_KEY.format(connection_id=connection_id)

        conn_data = {"room_id": room_id, "joined_at": datetime.now().isoformat()}
        if user_data:
            conn_data.update(user_data)

        async with self.redis_client.pipeline(transaction=False) as pipe:
            pipe.sadd(users_key, connection_id)
            pipe.hset(conn_key, mapping={k: json.dumps(v) if isinstance(v, (dict, list)) else str(v) for k, v in conn_data.items()})
            if self.ttl:
                pipe.expire(users_key, self.ttl)
                pipe.expire(conn_key, self.ttl)
            await pipe.execute()
        return True

    async def remove_user_from_room(self, room_id: str, connection_id: str):
        """Remove a connection from a room's mirrored member set."""
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        removed = await self.redis_client.srem(users_key, connection_id)
        conn_key = REDIS_CONN_KEY.format(connection_id=connection_id)
        deleted = await self.redis_client.delete(conn_key)
        logger.debug(f"Mirrored leave of {connection_id} from room {room_id}: user_set={removed}, metadata={deleted}")
        return True

    async def delete_room(self, room_id: str):
        logger.debug(f"Deleting mirrored room {room_id}")
        await self.redis_client.delete(REDIS_USERS_KEY.format(slug=room_id))
        return True

    async def token_exists(self, token: str) -> bool:
        return bool(await self.redis_client.exists(REDIS_TOKEN_KEY.format(token=token)))


def create_redis_backend() -> RedisBackend:
    """Build the backend. The connection is checked in the app lifespan via connect()."""
    client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
    return RedisBackend(client)
