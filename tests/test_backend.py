from unittest.mock import AsyncMock, MagicMock

import pytest

from backend import RedisBackend


def make_client():
    client = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline.return_value.__aenter__ = AsyncMock(return_value=pipe)
    client.pipeline.return_value.__aexit__ = AsyncMock(return_value=False)
    client.srem = AsyncMock(return_value=1)
    client.delete = AsyncMock(return_value=1)
    client.exists = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client, pipe


async def test_add_user_to_room_writes_set_and_metadata():
    client, pipe = make_client()
    backend = RedisBackend(client, ttl=60)

    await backend.add_user_to_room("ABC123", "conn-1")

    client.pipeline.assert_called_once_with(transaction=False)
    pipe.sadd.assert_called_once_with("room:users:ABC123", "conn-1")
    pipe.expire.assert_any_call("room:users:ABC123", 60)
    key, = pipe.hset.call_args.args
    mapping = pipe.hset.call_args.kwargs["mapping"]
    assert key == "conn:conn-1"
    assert mapping["room_id"] == "ABC123"
    assert "joined_at" in mapping
    pipe.expire.assert_any_call("conn:conn-1", 60)
    pipe.execute.assert_awaited_once()


async def test_add_user_without_ttl_skips_expire():
    client, pipe = make_client()
    backend = RedisBackend(client, ttl=0)

    await backend.add_user_to_room("ABC123", "conn-1", {"name": "alice"})

    pipe.expire.assert_not_called()
    assert pipe.hset.call_args.kwargs["mapping"]["name"] == "alice"


async def test_remove_user_from_room():
    client, _ = make_client()
    backend = RedisBackend(client)

    await backend.remove_user_from_room("ABC123", "conn-1")

    client.srem.assert_awaited_once_with("room:users:ABC123", "conn-1")
    client.delete.assert_awaited_once_with("conn:conn-1")


async def test_delete_room_and_token_lookup():
    client, _ = make_client()
    backend = RedisBackend(client)

    await backend.delete_room("ABC123")

    client.delete.assert_awaited_once_with("room:users:ABC123")
    assert await backend.token_exists("tok") is True
    client.exists.assert_awaited_once_with("auth:token:tok")


async def test_connect_failure_is_raised():
    client, _ = make_client()
    client.ping.side_effect = ConnectionError("refused")

    with pytest.raises(ConnectionError):
        await RedisBackend(client).connect()
