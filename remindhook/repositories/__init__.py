"""
Reminder store gateways.

``get_reminder_store()`` returns the process-wide gateway selected by
STORE_BACKEND; tests construct InMemoryReminderStore directly.
"""

from remindhook.config import settings
from remindhook.repositories.memory_store import InMemoryReminderStore
from remindhook.repositories.reminder_store import ReminderStore, Subscription

_store: ReminderStore | None = None


def create_reminder_store() -> ReminderStore:
    if settings.uses_redis():
        from remindhook.repositories.redis_store import RedisReminderStore

        return RedisReminderStore()
    return InMemoryReminderStore()


def get_reminder_store() -> ReminderStore:
    global _store
    if _store is None:
        _store = create_reminder_store()
    return _store


__all__ = [
    "InMemoryReminderStore",
    "ReminderStore",
    "Subscription",
    "create_reminder_store",
    "get_reminder_store",
]
