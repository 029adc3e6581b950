"""
Reminder statistics.
Read-only aggregate over an owner's reminders; a snapshot that is one tick
stale is acceptable.
"""

from datetime import datetime

from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import (
    NextExecution,
    Reminder,
    ReminderStats,
    is_epoch_zero,
)
from remindhook.repositories.reminder_store import ReminderStore
from remindhook.services.schedule_calculator import ScheduleClock, default_clock

logger = get_logger(__name__)


def find_next_execution(reminders: list[Reminder], now: datetime) -> NextExecution | None:
    """Soonest future next-run across active reminders and active slots."""
    soonest: NextExecution | None = None

    for reminder in reminders:
        if not reminder.is_active:
            continue
        for index, next_run in enumerate(reminder.next_runs):
            if index >= len(reminder.time_slots):
                break
            slot = reminder.time_slots[index]
            if not slot.is_active or is_epoch_zero(next_run) or next_run <= now:
                continue
            if soonest is None or next_run < soonest.time:
                soonest = NextExecution(
                    time=next_run,
                    reminder_id=reminder.id,
                    reminder_name=reminder.name,
                    time_slot_id=slot.id,
                )

    return soonest


class ReminderStatsService:
    def __init__(self, store: ReminderStore, clock: ScheduleClock | None = None):
        self.store = store
        self.clock = clock or default_clock()

    async def get_stats(self, owner: str, now: datetime | None = None) -> ReminderStats:
        now = now or self.clock.now()
        reminders = await self.store.list_by_owner(owner)

        total = len(reminders)
        active = sum(1 for reminder in reminders if reminder.is_active)
        total_executions = sum(reminder.execution_count or 0 for reminder in reminders)

        today_executions = 0
        if reminders:
            today_executions = await self.store.count_success_logs_since(
                self.clock.start_of_day(now), [reminder.id for reminder in reminders]
            )

        stats = ReminderStats(
            total=total,
            active=active,
            inactive=total - active,
            total_executions=total_executions,
            today_executions=today_executions,
            next_execution=find_next_execution(reminders, now),
        )

        logger.debug(
            "Reminder stats computed",
            owner=owner,
            total=stats.total,
            active=stats.active,
            today_executions=stats.today_executions,
        )
        return stats
