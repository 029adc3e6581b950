"""
Execution log cleanup job.

Runs daily to:
1. Delete log entries whose reminder no longer exists
2. Delete log entries older than EXECUTION_LOG_RETENTION_DAYS

Never fails: each step logs and records its own errors.
"""

from datetime import UTC, datetime, timedelta

from remindhook.config import settings
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.repositories import get_reminder_store
from remindhook.repositories.reminder_store import ReminderStore

logger = get_logger(__name__)


class ExecutionLogCleanupJob:
    """Retention enforcement for the execution log collection."""

    def __init__(self, store: ReminderStore | None = None):
        self.store = store
        self.is_running = False

    async def run_cleanup(self, now: datetime | None = None) -> dict:
        """
        Run cleanup.

        Returns:
            dict: {
                "success": bool,
                "deleted_orphaned_logs": int,
                "deleted_expired_logs": int,
                "errors": list,
            }
        """
        if self.is_running:
            logger.warning("Log cleanup already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        store = self.store or get_reminder_store()
        start_time = datetime.now(UTC)
        now = now or start_time

        logger.info("Starting execution log cleanup", timestamp=start_time.isoformat())

        result = {
            "success": True,
            "deleted_orphaned_logs": 0,
            "deleted_expired_logs": 0,
            "errors": [],
        }

        try:
            try:
                result["deleted_orphaned_logs"] = await self._delete_orphaned_logs(store)
            except Exception as e:
                error_msg = f"Failed to delete orphaned logs: {e}"
                logger.error(error_msg)
                result["errors"].append(error_msg)

            try:
                result["deleted_expired_logs"] = await self._delete_expired_logs(store, now)
            except Exception as e:
                error_msg = f"Failed to delete expired logs: {e}"
                logger.error(error_msg)
                result["errors"].append(error_msg)

            if result["errors"]:
                result["success"] = False

        finally:
            self.is_running = False

        duration = (datetime.now(UTC) - start_time).total_seconds()
        logger.info("Execution log cleanup completed", duration_seconds=duration, result=result)
        return result

    async def _delete_orphaned_logs(self, store: ReminderStore) -> int:
        logged_ids = await store.list_log_reminder_ids()
        existing_ids = {reminder.id for reminder in await store.list_all()}
        orphaned = logged_ids - existing_ids

        if not orphaned:
            logger.info("No orphaned execution logs found")
            return 0

        deleted = await store.purge_logs(orphaned)
        logger.info("Orphaned execution logs deleted", reminders=len(orphaned), count=deleted)
        return deleted

    async def _delete_expired_logs(self, store: ReminderStore, now: datetime) -> int:
        retention_days = settings.EXECUTION_LOG_RETENTION_DAYS
        cutoff = now - timedelta(days=retention_days)

        deleted = await store.purge_logs_before(cutoff)
        logger.info(
            "Expired execution logs deleted",
            retention_days=retention_days,
            cutoff_date=cutoff.isoformat(),
            count=deleted,
        )
        return deleted


execution_log_cleanup_job = ExecutionLogCleanupJob()


async def run_execution_log_cleanup() -> dict:
    store = get_reminder_store()
    await store.initialize()
    try:
        return await execution_log_cleanup_job.run_cleanup()
    finally:
        await store.close()
