"""
In-process reminder store.

Keeps JSON-shaped documents in dictionaries. Used for tests and local
development (STORE_BACKEND=memory); state is lost on restart.
"""

import asyncio
import copy
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import (
    EPOCH_ZERO,
    ExecutionLogEntry,
    ExecutionStatus,
    Reminder,
)
from remindhook.repositories.reminder_store import ReminderStore

logger = get_logger(__name__)


def _created_key(reminder: Reminder) -> datetime:
    return reminder.created_at or EPOCH_ZERO


class InMemoryReminderStore(ReminderStore):
    """Dictionary-backed gateway with an asyncio lock around read-modify-write."""

    def __init__(self):
        super().__init__()
        self._reminders: dict[str, dict] = {}
        self._logs: dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def ping(self) -> bool:
        return True

    async def create(self, reminder: Reminder) -> Reminder:
        if not reminder.id:
            reminder.id = uuid.uuid4().hex
        async with self._lock:
            self._reminders[reminder.id] = copy.deepcopy(reminder.to_document())
        await self._notify_owner(reminder.owner)
        return reminder

    async def get(self, reminder_id: str) -> Reminder | None:
        doc = self._reminders.get(reminder_id)
        return Reminder.from_document(copy.deepcopy(doc)) if doc else None

    async def update(self, reminder_id: str, changes: dict[str, Any]) -> Reminder | None:
        async with self._lock:
            doc = self._reminders.get(reminder_id)
            if doc is None:
                return None
            doc.update(copy.deepcopy(changes))
            doc["id"] = reminder_id
            updated = Reminder.from_document(copy.deepcopy(doc))
        await self._notify_owner(updated.owner)
        return updated

    async def delete(self, reminder_id: str) -> bool:
        async with self._lock:
            doc = self._reminders.pop(reminder_id, None)
        if doc is None:
            return False
        await self._notify_owner(doc.get("userId", ""))
        return True

    async def batch_delete(self, reminder_ids: Iterable[str]) -> int:
        owners = set()
        deleted = 0
        async with self._lock:
            for reminder_id in reminder_ids:
                doc = self._reminders.pop(reminder_id, None)
                if doc is not None:
                    deleted += 1
                    owners.add(doc.get("userId", ""))
        for owner in owners:
            await self._notify_owner(owner)
        return deleted

    async def list_by_owner(self, owner: str) -> list[Reminder]:
        reminders = [
            Reminder.from_document(copy.deepcopy(doc))
            for doc in self._reminders.values()
            if doc.get("userId") == owner
        ]
        return sorted(reminders, key=_created_key, reverse=True)

    async def list_all(self) -> list[Reminder]:
        return [Reminder.from_document(copy.deepcopy(doc)) for doc in self._reminders.values()]

    async def find_due_candidates(self, day_code: str) -> list[Reminder]:
        return [
            Reminder.from_document(copy.deepcopy(doc))
            for doc in self._reminders.values()
            if doc.get("isActive") and day_code in doc.get("days", [])
        ]

    async def increment_execution(self, reminder_id: str, executed_at: datetime) -> int | None:
        async with self._lock:
            doc = self._reminders.get(reminder_id)
            if doc is None:
                return None
            doc["executionCount"] = int(doc.get("executionCount") or 0) + 1
            doc["lastExecutionTime"] = executed_at.isoformat()
            new_count = doc["executionCount"]
            owner = doc.get("userId", "")
        await self._notify_owner(owner)
        return new_count

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        if not entry.id:
            entry.id = uuid.uuid4().hex
        self._logs[entry.id] = entry.to_document()
        return entry

    def _entries(self) -> list[ExecutionLogEntry]:
        return [ExecutionLogEntry.from_document(doc) for doc in self._logs.values()]

    async def list_logs(self, reminder_id: str, limit: int = 50) -> list[ExecutionLogEntry]:
        entries = [entry for entry in self._entries() if entry.reminder_id == reminder_id]
        entries.sort(key=lambda entry: entry.executed_at, reverse=True)
        return entries[:limit]

    async def count_success_logs_since(self, since: datetime, reminder_ids: Iterable[str]) -> int:
        wanted = set(reminder_ids)
        return sum(
            1
            for entry in self._entries()
            if entry.reminder_id in wanted
            and entry.status == ExecutionStatus.SUCCESS
            and entry.executed_at >= since
        )

    async def list_log_reminder_ids(self) -> set[str]:
        return {doc["reminderId"] for doc in self._logs.values()}

    async def purge_logs(self, reminder_ids: Iterable[str]) -> int:
        wanted = set(reminder_ids)
        doomed = [log_id for log_id, doc in self._logs.items() if doc["reminderId"] in wanted]
        for log_id in doomed:
            del self._logs[log_id]
        return len(doomed)

    async def purge_logs_before(self, cutoff: datetime) -> int:
        doomed = [entry.id for entry in self._entries() if entry.executed_at < cutoff]
        for log_id in doomed:
            del self._logs[log_id]
        return len(doomed)
