"""
Execution log service.
Append-only audit trail: one entry per attempted time-slot delivery,
written for both outcomes and never modified afterwards.
"""

from datetime import datetime

from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import (
    ExecutionLogEntry,
    ExecutionStatus,
    ExecutionTrigger,
)
from remindhook.repositories.reminder_store import ReminderStore

logger = get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500
DEFAULT_HISTORY_LIMIT = 50


class ExecutionLogService:
    """Writes and reads execution log entries through the store gateway."""

    def __init__(self, store: ReminderStore):
        self.store = store

    async def record(
        self,
        reminder_id: str,
        time_slot_id: str,
        status: ExecutionStatus,
        executed_at: datetime,
        *,
        error_message: str | None = None,
        response_status: int | None = None,
        trigger: ExecutionTrigger = ExecutionTrigger.SCHEDULED,
    ) -> ExecutionLogEntry | None:
        """
        Append one entry.

        Returns the stored entry, or None if the write failed. A failed audit
        write is logged and never interrupts delivery of sibling slots.
        """
        entry = ExecutionLogEntry(
            id="",
            reminder_id=reminder_id,
            time_slot_id=time_slot_id,
            status=status,
            executed_at=executed_at,
            error_message=(error_message or "")[:MAX_ERROR_MESSAGE_LENGTH] or None,
            response_status=response_status,
            trigger=trigger,
        )

        try:
            return await self.store.append_log(entry)
        except Exception as e:
            logger.error(
                "Failed to write execution log",
                reminder_id=reminder_id,
                time_slot_id=time_slot_id,
                status=status.value,
                error=str(e),
            )
            return None

    async def history(self, reminder_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[ExecutionLogEntry]:
        """A reminder's attempts, newest first."""
        return await self.store.list_logs(reminder_id, limit=limit)
