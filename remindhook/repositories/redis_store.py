"""
Redis-backed reminder store.

Layout:
    webhook_reminders:<id>                         JSON document
    webhook_reminders:owner:<owner>                zset of ids scored by createdAt
    webhook_reminders:day:<code>                   set of ids whose days contain code
    reminder_execution_logs:<id>                   JSON document
    reminder_execution_logs:by_reminder:<rid>      zset of log ids scored by executedAt
    reminder_execution_logs:by_time                zset of all log ids scored by executedAt
    webhook_reminders:changes:<owner>              pub/sub channel, one message per write

Read-modify-write paths (updates and the execution counter) run under
WATCH/MULTI and retry on conflict, so overlapping ticks never lose an
increment.

Live queries subscribe to the owner's change channel, so writes made by
another process (the cron worker) still reach listeners in the API.
"""

import asyncio
import json
import uuid
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from remindhook.errors import StoreUnavailable
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import (
    EPOCH_ZERO,
    EXECUTION_LOGS_COLLECTION,
    REMINDERS_COLLECTION,
    ExecutionLogEntry,
    ExecutionStatus,
    Reminder,
)
from remindhook.repositories.reminder_store import ReminderStore, SnapshotCallback, Subscription
from remindhook.services.infrastructure.redis_client import FastRedisClient

logger = get_logger(__name__)

MAX_WATCH_RETRIES = 10
CHANGE_MESSAGE = "changed"


def _score(moment: datetime | None) -> float:
    return (moment or EPOCH_ZERO).timestamp()


class RedisReminderStore(ReminderStore):
    """Document gateway over a pooled Redis connection."""

    def __init__(self, redis_client: FastRedisClient | None = None):
        super().__init__()
        self.redis = redis_client or FastRedisClient()
        self._listeners: dict[Subscription, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def _reminder_key(reminder_id: str) -> str:
        return f"{REMINDERS_COLLECTION}:{reminder_id}"

    @staticmethod
    def _owner_key(owner: str) -> str:
        return f"{REMINDERS_COLLECTION}:owner:{owner}"

    @staticmethod
    def _changes_channel(owner: str) -> str:
        return f"{REMINDERS_COLLECTION}:changes:{owner}"

    @staticmethod
    def _day_key(day_code: str) -> str:
        return f"{REMINDERS_COLLECTION}:day:{day_code}"

    @staticmethod
    def _log_key(log_id: str) -> str:
        return f"{EXECUTION_LOGS_COLLECTION}:{log_id}"

    @staticmethod
    def _log_by_reminder_key(reminder_id: str) -> str:
        return f"{EXECUTION_LOGS_COLLECTION}:by_reminder:{reminder_id}"

    @staticmethod
    def _log_by_time_key() -> str:
        return f"{EXECUTION_LOGS_COLLECTION}:by_time"

    @asynccontextmanager
    async def _guard(self, operation: str):
        """Translate connectivity errors into StoreUnavailable."""
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Redis store unavailable", operation=operation, error=str(e))
            raise StoreUnavailable(f"Reminder store unreachable: {e}", operation=operation) from e
        except RedisError as e:
            logger.error("Redis store error", operation=operation, error=str(e))
            raise StoreUnavailable(f"Reminder store error: {e}", operation=operation) from e

    async def _client(self):
        return await self.redis.ensure_initialized()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        await self.redis.initialize()

    async def close(self) -> None:
        listeners = list(self._listeners.values())
        for subscription in list(self._listeners):
            subscription.unsubscribe()
        await asyncio.gather(*listeners, return_exceptions=True)
        await self.redis.close()

    async def ping(self) -> bool:
        return await self.redis.ping()

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def _load_many(self, ids: Iterable[str]) -> list[Reminder]:
        ids = list(ids)
        if not ids:
            return []
        client = await self._client()
        raw_docs = await client.mget([self._reminder_key(rid) for rid in ids])
        return [Reminder.from_document(json.loads(raw)) for raw in raw_docs if raw]

    async def create(self, reminder: Reminder) -> Reminder:
        if not reminder.id:
            reminder.id = uuid.uuid4().hex

        async with self._guard("create"):
            client = await self._client()
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._reminder_key(reminder.id), json.dumps(reminder.to_document()))
                pipe.zadd(self._owner_key(reminder.owner), {reminder.id: _score(reminder.created_at)})
                for day in reminder.days:
                    pipe.sadd(self._day_key(day), reminder.id)
                await pipe.execute()

        logger.debug("Reminder document created", reminder_id=reminder.id, owner=reminder.owner)
        await self._notify_owner(reminder.owner)
        return reminder

    async def get(self, reminder_id: str) -> Reminder | None:
        async with self._guard("get"):
            client = await self._client()
            raw = await client.get(self._reminder_key(reminder_id))
        return Reminder.from_document(json.loads(raw)) if raw else None

    async def update(self, reminder_id: str, changes: dict[str, Any]) -> Reminder | None:
        key = self._reminder_key(reminder_id)

        async with self._guard("update"):
            client = await self._client()
            async with client.pipeline(transaction=True) as pipe:
                for attempt in range(1, MAX_WATCH_RETRIES + 1):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            await pipe.reset()
                            return None

                        doc = json.loads(raw)
                        old_days = set(doc.get("days", []))
                        doc.update(changes)
                        doc["id"] = reminder_id
                        new_days = set(doc.get("days", []))

                        pipe.multi()
                        pipe.set(key, json.dumps(doc))
                        for day in old_days - new_days:
                            pipe.srem(self._day_key(day), reminder_id)
                        for day in new_days - old_days:
                            pipe.sadd(self._day_key(day), reminder_id)
                        await pipe.execute()
                        break
                    except WatchError:
                        logger.debug("Reminder update conflict, retrying", reminder_id=reminder_id, attempt=attempt)
                        continue
                else:
                    raise StoreUnavailable(
                        f"Reminder {reminder_id} kept changing during update", operation="update"
                    )

        updated = Reminder.from_document(doc)
        await self._notify_owner(updated.owner)
        return updated

    async def _delete_docs(self, reminder_ids: list[str]) -> tuple[int, set[str]]:
        existing = await self._load_many(reminder_ids)
        if not existing:
            return 0, set()

        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:
            for reminder in existing:
                pipe.delete(self._reminder_key(reminder.id))
                pipe.zrem(self._owner_key(reminder.owner), reminder.id)
                for day in reminder.days:
                    pipe.srem(self._day_key(day), reminder.id)
            await pipe.execute()

        return len(existing), {reminder.owner for reminder in existing}

    async def delete(self, reminder_id: str) -> bool:
        async with self._guard("delete"):
            deleted, owners = await self._delete_docs([reminder_id])
        for owner in owners:
            await self._notify_owner(owner)
        return deleted > 0

    async def batch_delete(self, reminder_ids: Iterable[str]) -> int:
        async with self._guard("batch_delete"):
            deleted, owners = await self._delete_docs(list(reminder_ids))
        for owner in owners:
            await self._notify_owner(owner)
        return deleted

    async def list_by_owner(self, owner: str) -> list[Reminder]:
        async with self._guard("list_by_owner"):
            client = await self._client()
            ids = await client.zrevrange(self._owner_key(owner), 0, -1)
            return await self._load_many(ids)

    async def list_all(self) -> list[Reminder]:
        async with self._guard("list_all"):
            client = await self._client()
            ids = []
            prefix = f"{REMINDERS_COLLECTION}:"
            async for key in client.scan_iter(match=f"{prefix}*"):
                suffix = key[len(prefix):]
                # Skip index keys (owner:/day:)
                if ":" not in suffix:
                    ids.append(suffix)
            return await self._load_many(ids)

    async def find_due_candidates(self, day_code: str) -> list[Reminder]:
        async with self._guard("find_due_candidates"):
            client = await self._client()
            ids = await client.smembers(self._day_key(day_code))
            reminders = await self._load_many(sorted(ids))
        return [r for r in reminders if r.is_active and day_code in r.days]

    async def increment_execution(self, reminder_id: str, executed_at: datetime) -> int | None:
        key = self._reminder_key(reminder_id)

        async with self._guard("increment_execution"):
            client = await self._client()
            async with client.pipeline(transaction=True) as pipe:
                for attempt in range(1, MAX_WATCH_RETRIES + 1):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            await pipe.reset()
                            return None

                        doc = json.loads(raw)
                        doc["executionCount"] = int(doc.get("executionCount") or 0) + 1
                        doc["lastExecutionTime"] = executed_at.isoformat()

                        pipe.multi()
                        pipe.set(key, json.dumps(doc))
                        await pipe.execute()
                        break
                    except WatchError:
                        logger.debug(
                            "Execution counter conflict, retrying", reminder_id=reminder_id, attempt=attempt
                        )
                        continue
                else:
                    raise StoreUnavailable(
                        f"Execution counter for {reminder_id} kept conflicting",
                        operation="increment_execution",
                    )

        await self._notify_owner(doc.get("userId", ""))
        return doc["executionCount"]

    # ------------------------------------------------------------------
    # Execution log
    # ------------------------------------------------------------------

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        if not entry.id:
            entry.id = uuid.uuid4().hex

        score = _score(entry.executed_at)
        async with self._guard("append_log"):
            client = await self._client()
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._log_key(entry.id), json.dumps(entry.to_document()))
                pipe.zadd(self._log_by_reminder_key(entry.reminder_id), {entry.id: score})
                pipe.zadd(self._log_by_time_key(), {entry.id: score})
                await pipe.execute()
        return entry

    async def _load_logs(self, log_ids: Iterable[str]) -> list[ExecutionLogEntry]:
        log_ids = list(log_ids)
        if not log_ids:
            return []
        client = await self._client()
        raw_docs = await client.mget([self._log_key(log_id) for log_id in log_ids])
        return [ExecutionLogEntry.from_document(json.loads(raw)) for raw in raw_docs if raw]

    async def list_logs(self, reminder_id: str, limit: int = 50) -> list[ExecutionLogEntry]:
        async with self._guard("list_logs"):
            client = await self._client()
            log_ids = await client.zrevrange(self._log_by_reminder_key(reminder_id), 0, max(limit, 1) - 1)
            return await self._load_logs(log_ids)

    async def count_success_logs_since(self, since: datetime, reminder_ids: Iterable[str]) -> int:
        total = 0
        async with self._guard("count_success_logs_since"):
            client = await self._client()
            for reminder_id in reminder_ids:
                log_ids = await client.zrangebyscore(
                    self._log_by_reminder_key(reminder_id), _score(since), "+inf"
                )
                entries = await self._load_logs(log_ids)
                total += sum(1 for entry in entries if entry.status == ExecutionStatus.SUCCESS)
        return total

    async def list_log_reminder_ids(self) -> set[str]:
        prefix = f"{EXECUTION_LOGS_COLLECTION}:by_reminder:"
        async with self._guard("list_log_reminder_ids"):
            client = await self._client()
            return {key[len(prefix):] async for key in client.scan_iter(match=f"{prefix}*")}

    async def purge_logs(self, reminder_ids: Iterable[str]) -> int:
        purged = 0
        async with self._guard("purge_logs"):
            client = await self._client()
            for reminder_id in reminder_ids:
                index_key = self._log_by_reminder_key(reminder_id)
                log_ids = await client.zrange(index_key, 0, -1)
                async with client.pipeline(transaction=True) as pipe:
                    for log_id in log_ids:
                        pipe.delete(self._log_key(log_id))
                    if log_ids:
                        pipe.zrem(self._log_by_time_key(), *log_ids)
                    pipe.delete(index_key)
                    await pipe.execute()
                purged += len(log_ids)
        return purged

    async def purge_logs_before(self, cutoff: datetime) -> int:
        async with self._guard("purge_logs_before"):
            client = await self._client()
            log_ids = await client.zrangebyscore(self._log_by_time_key(), "-inf", f"({_score(cutoff)}")
            entries = await self._load_logs(log_ids)
            async with client.pipeline(transaction=True) as pipe:
                for entry in entries:
                    pipe.delete(self._log_key(entry.id))
                    pipe.zrem(self._log_by_reminder_key(entry.reminder_id), entry.id)
                if log_ids:
                    pipe.zrem(self._log_by_time_key(), *log_ids)
                await pipe.execute()
        return len(log_ids)

    # ------------------------------------------------------------------
    # Live subscriptions
    # ------------------------------------------------------------------

    async def _notify_owner(self, owner: str) -> None:
        """Publish a change marker; listeners in every process re-read the snapshot."""
        if not owner:
            return
        try:
            client = await self._client()
            await client.publish(self._changes_channel(owner), CHANGE_MESSAGE)
        except (RedisError, StoreUnavailable) as e:
            # The write itself already committed
            logger.warning("Change notification not published", owner=owner, error=str(e))

    async def subscribe_owner(self, owner: str, callback: SnapshotCallback) -> Subscription:
        async with self._guard("subscribe_owner"):
            client = await self._client()
            pubsub = client.pubsub()
            await pubsub.subscribe(self._changes_channel(owner))

        try:
            subscription = await super().subscribe_owner(owner, callback)
        except Exception:
            await pubsub.aclose()
            raise

        self._listeners[subscription] = asyncio.create_task(self._listen(subscription, pubsub))
        return subscription

    async def _listen(self, subscription: Subscription, pubsub) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    snapshot = await self.list_by_owner(subscription.owner)
                except StoreUnavailable as e:
                    logger.warning("Live query refresh skipped", owner=subscription.owner, error=str(e))
                    continue
                await self._deliver(subscription, snapshot)
        except RedisError as e:
            logger.error("Live query listener stopped", owner=subscription.owner, error=str(e))
        finally:
            await pubsub.aclose()

    def _remove_subscription(self, subscription: Subscription) -> None:
        super()._remove_subscription(subscription)
        listener = self._listeners.pop(subscription, None)
        if listener is not None:
            listener.cancel()
