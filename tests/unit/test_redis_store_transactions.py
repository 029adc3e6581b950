"""
WATCH/MULTI retry loops and change notifications in the Redis gateway.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from remindhook.errors import StoreUnavailable
from remindhook.repositories.redis_store import MAX_WATCH_RETRIES, RedisReminderStore

CHANNEL = "webhook_reminders:changes:user-123"


def _pipe(raw=None, execute_side_effect=None):
    pipe = MagicMock()
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value=raw)
    pipe.reset = AsyncMock()
    pipe.execute = AsyncMock(return_value=[True], side_effect=execute_side_effect)
    return pipe


def _store_with(client) -> RedisReminderStore:
    redis_client = MagicMock()
    redis_client.ensure_initialized = AsyncMock(return_value=client)
    return RedisReminderStore(redis_client=redis_client)


def _client_with(pipe):
    client = MagicMock()
    client.pipeline.return_value.__aenter__.return_value = pipe
    client.publish = AsyncMock(return_value=1)
    return client


@pytest.fixture
def stored_doc(reminder_factory):
    return reminder_factory(id="r1", days=["1", "3"], execution_count=4).to_document()


@pytest.mark.asyncio
async def test_increment_retries_after_watch_conflict(stored_doc, at):
    pipe = _pipe(json.dumps(stored_doc), execute_side_effect=[WatchError(), [True]])
    client = _client_with(pipe)

    count = await _store_with(client).increment_execution("r1", at(2024, 1, 8, 9, 0))

    assert count == 5
    assert pipe.watch.await_count == 2
    written = json.loads(pipe.set.call_args.args[1])
    assert written["executionCount"] == 5
    assert written["lastExecutionTime"] == at(2024, 1, 8, 9, 0).isoformat()
    client.publish.assert_awaited_once_with(CHANNEL, "changed")


@pytest.mark.asyncio
async def test_increment_gives_up_after_persistent_conflict(stored_doc, at):
    pipe = _pipe(json.dumps(stored_doc), execute_side_effect=WatchError())

    with pytest.raises(StoreUnavailable) as exc_info:
        await _store_with(_client_with(pipe)).increment_execution("r1", at(2024, 1, 8, 9, 0))

    assert exc_info.value.operation == "increment_execution"
    assert pipe.execute.await_count == MAX_WATCH_RETRIES


@pytest.mark.asyncio
async def test_increment_missing_reminder_returns_none(at):
    pipe = _pipe(None)
    client = _client_with(pipe)

    assert await _store_with(client).increment_execution("gone", at(2024, 1, 8, 9, 0)) is None
    pipe.reset.assert_awaited_once()
    pipe.execute.assert_not_awaited()
    client.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_retries_and_moves_day_index(stored_doc):
    pipe = _pipe(json.dumps(stored_doc), execute_side_effect=[WatchError(), [True]])
    client = _client_with(pipe)

    updated = await _store_with(client).update("r1", {"name": "Renamed", "days": ["1", "5"]})

    assert updated.name == "Renamed"
    assert updated.days == ["1", "5"]
    assert pipe.watch.await_count == 2
    pipe.srem.assert_called_with("webhook_reminders:day:3", "r1")
    pipe.sadd.assert_called_with("webhook_reminders:day:5", "r1")
    client.publish.assert_awaited_once_with(CHANNEL, "changed")


@pytest.mark.asyncio
async def test_update_gives_up_after_persistent_conflict(stored_doc):
    pipe = _pipe(json.dumps(stored_doc), execute_side_effect=WatchError())

    with pytest.raises(StoreUnavailable) as exc_info:
        await _store_with(_client_with(pipe)).update("r1", {"name": "Renamed"})

    assert exc_info.value.operation == "update"
    assert pipe.execute.await_count == MAX_WATCH_RETRIES


@pytest.mark.asyncio
async def test_update_missing_reminder_returns_none():
    pipe = _pipe(None)

    assert await _store_with(_client_with(pipe)).update("gone", {"name": "x"}) is None
    pipe.reset.assert_awaited_once()


@pytest.mark.asyncio
async def test_create_publishes_change_for_owner(reminder_factory):
    client = _client_with(_pipe())

    await _store_with(client).create(reminder_factory())

    client.publish.assert_awaited_once_with(CHANNEL, "changed")


@pytest.mark.asyncio
async def test_failed_publish_does_not_fail_the_write(reminder_factory):
    client = _client_with(_pipe())
    client.publish = AsyncMock(side_effect=RedisConnectionError("gone"))

    created = await _store_with(client).create(reminder_factory())

    assert created.id


@pytest.mark.asyncio
async def test_subscription_follows_published_changes_until_released():
    messages: asyncio.Queue = asyncio.Queue()

    async def listen():
        yield {"type": "subscribe", "channel": CHANNEL, "data": 1}
        while True:
            yield await messages.get()

    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.listen = listen
    client = MagicMock()
    client.pubsub.return_value = pubsub
    client.zrevrange = AsyncMock(return_value=[])
    store = _store_with(client)

    snapshots = []
    refreshed = asyncio.Event()

    def on_snapshot(snapshot):
        snapshots.append(snapshot)
        if len(snapshots) == 2:
            refreshed.set()

    subscription = await store.subscribe_owner("user-123", on_snapshot)
    pubsub.subscribe.assert_awaited_once_with(CHANNEL)

    # A write in another process only shows up as a channel message
    await messages.put({"type": "message", "channel": CHANNEL, "data": "changed"})
    await asyncio.wait_for(refreshed.wait(), timeout=1)
    assert snapshots == [[], []]

    listener = store._listeners[subscription]
    subscription.unsubscribe()
    await asyncio.gather(listener, return_exceptions=True)

    assert listener.cancelled()
    pubsub.aclose.assert_awaited_once()
    assert store.listener_count("user-123") == 0
