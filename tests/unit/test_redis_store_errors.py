"""
Connectivity failures in the Redis gateway surface as StoreUnavailable.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from remindhook.errors import StoreUnavailable
from remindhook.repositories.redis_store import RedisReminderStore


def _store_with(client) -> RedisReminderStore:
    redis_client = MagicMock()
    redis_client.ensure_initialized = AsyncMock(return_value=client)
    return RedisReminderStore(redis_client=redis_client)


@pytest.mark.asyncio
async def test_get_connection_error():
    client = MagicMock()
    client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))

    with pytest.raises(StoreUnavailable) as exc_info:
        await _store_with(client).get("r1")

    assert exc_info.value.operation == "get"
    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_due_candidates_timeout():
    client = MagicMock()
    client.smembers = AsyncMock(side_effect=RedisTimeoutError("timed out"))

    with pytest.raises(StoreUnavailable) as exc_info:
        await _store_with(client).find_due_candidates("1")

    assert exc_info.value.operation == "find_due_candidates"


@pytest.mark.asyncio
async def test_other_redis_errors_are_wrapped():
    client = MagicMock()
    client.zrevrange = AsyncMock(side_effect=ResponseError("WRONGTYPE"))

    with pytest.raises(StoreUnavailable):
        await _store_with(client).list_by_owner("user-123")


@pytest.mark.asyncio
async def test_due_candidates_filters_stale_index_entries(reminder_factory):
    active = reminder_factory(id="r1", days=["1"])
    moved = reminder_factory(id="r2", days=["2"])
    client = MagicMock()
    client.smembers = AsyncMock(return_value={"r1", "r2", "r3"})
    client.mget = AsyncMock(
        return_value=[json.dumps(active.to_document()), json.dumps(moved.to_document()), None]
    )

    candidates = await _store_with(client).find_due_candidates("1")

    assert [r.id for r in candidates] == ["r1"]


@pytest.mark.asyncio
async def test_ping_delegates_to_client():
    redis_client = MagicMock()
    redis_client.ping = AsyncMock(return_value=False)

    assert await RedisReminderStore(redis_client=redis_client).ping() is False
