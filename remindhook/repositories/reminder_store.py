"""
Reminder store gateway.

The document store is an external collaborator; this module defines the
narrow interface the core relies on (CRUD by id, owner listing with live
subscription, the dispatcher's one-shot due-candidate query, a
transactional execution counter and the execution-log collection).
Concrete gateways live in memory_store.py and redis_store.py.
"""

import inspect
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import ExecutionLogEntry, Reminder

logger = get_logger(__name__)

SnapshotCallback = Callable[[list[Reminder]], Awaitable[None] | None]


class Subscription:
    """Handle for a live owner query; call ``unsubscribe()`` to release it."""

    def __init__(self, store: "ReminderStore", owner: str, callback: SnapshotCallback):
        self._store = store
        self.owner = owner
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._remove_subscription(self)


class ReminderStore(ABC):
    """Async gateway over the reminder and execution-log collections."""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def ping(self) -> bool:
        """Connectivity check."""

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    @abstractmethod
    async def create(self, reminder: Reminder) -> Reminder:
        """Persist a new reminder; assigns ``reminder.id`` when empty."""

    @abstractmethod
    async def get(self, reminder_id: str) -> Reminder | None:
        """Point read."""

    @abstractmethod
    async def update(self, reminder_id: str, changes: dict[str, Any]) -> Reminder | None:
        """Merge document fields into a stored reminder; None if it does not exist."""

    @abstractmethod
    async def delete(self, reminder_id: str) -> bool:
        """Delete one reminder."""

    @abstractmethod
    async def batch_delete(self, reminder_ids: Iterable[str]) -> int:
        """Delete several reminders in one batch; returns how many existed."""

    @abstractmethod
    async def list_by_owner(self, owner: str) -> list[Reminder]:
        """All reminders for ``owner``, newest first by createdAt."""

    @abstractmethod
    async def list_all(self) -> list[Reminder]:
        """Every stored reminder (maintenance jobs only)."""

    @abstractmethod
    async def find_due_candidates(self, day_code: str) -> list[Reminder]:
        """Reminders where isActive is true and days contains ``day_code``."""

    @abstractmethod
    async def increment_execution(self, reminder_id: str, executed_at: datetime) -> int | None:
        """
        Atomically bump executionCount and set lastExecutionTime.

        Returns the new count, or None when the reminder no longer exists.
        """

    # ------------------------------------------------------------------
    # Execution log
    # ------------------------------------------------------------------

    @abstractmethod
    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append one immutable entry; assigns ``entry.id`` when empty."""

    @abstractmethod
    async def list_logs(self, reminder_id: str, limit: int = 50) -> list[ExecutionLogEntry]:
        """A reminder's entries ordered by executedAt descending."""

    @abstractmethod
    async def count_success_logs_since(self, since: datetime, reminder_ids: Iterable[str]) -> int:
        """Number of success entries at or after ``since`` for the given reminders."""

    @abstractmethod
    async def list_log_reminder_ids(self) -> set[str]:
        """Every reminder id referenced by the execution log."""

    @abstractmethod
    async def purge_logs(self, reminder_ids: Iterable[str]) -> int:
        """Delete all entries belonging to the given reminders."""

    @abstractmethod
    async def purge_logs_before(self, cutoff: datetime) -> int:
        """Delete entries executed before ``cutoff``."""

    # ------------------------------------------------------------------
    # Live subscriptions
    # ------------------------------------------------------------------

    async def subscribe_owner(self, owner: str, callback: SnapshotCallback) -> Subscription:
        """
        Register a live query for ``owner``.

        The callback receives the current snapshot immediately and again after
        every change to that owner's reminders.
        """
        subscription = Subscription(self, owner, callback)
        self._subscriptions[owner].append(subscription)
        logger.debug("Live query registered", owner=owner, listeners=len(self._subscriptions[owner]))

        await self._deliver(subscription, await self.list_by_owner(owner))
        return subscription

    def listener_count(self, owner: str | None = None) -> int:
        if owner is not None:
            return len(self._subscriptions.get(owner, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _remove_subscription(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.owner, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.owner, None)
        logger.debug("Live query released", owner=subscription.owner)

    async def _notify_owner(self, owner: str) -> None:
        """Push a fresh snapshot to the owner's listeners."""
        subs = list(self._subscriptions.get(owner, []))
        if not subs:
            return

        snapshot = await self.list_by_owner(owner)
        for subscription in subs:
            await self._deliver(subscription, snapshot)

    async def _deliver(self, subscription: Subscription, snapshot: list[Reminder]) -> None:
        if not subscription.active:
            return
        try:
            result = subscription.callback(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            # A broken listener must not fail the write that triggered it
            logger.error("Live query callback failed", owner=subscription.owner, error=str(e))
