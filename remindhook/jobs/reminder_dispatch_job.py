"""
Reminder dispatch job.
Wraps the dispatcher for cron-style invocation: one scheduled tick per call,
or a manual "execute now" for a single reminder.
"""

import asyncio
from datetime import datetime

from remindhook.errors import ReminderError, StoreUnavailable
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.repositories import get_reminder_store
from remindhook.repositories.reminder_store import ReminderStore
from remindhook.services.dispatcher import ReminderDispatcher
from remindhook.services.reminder_service import ReminderService
from remindhook.services.schedule_calculator import ScheduleClock, default_clock
from remindhook.services.webhooks.delivery_client import WebhookDeliveryClient

logger = get_logger(__name__)

TICK_INTERVAL_SECONDS = 60


class ReminderDispatchJobError(ReminderError):
    """Dispatch job could not complete (shared infrastructure failure)."""


class ReminderDispatchJob:
    """
    Scheduled and manual reminder execution.

    Store and client are resolved per run so tests can inject fakes.
    """

    def __init__(
        self,
        store: ReminderStore | None = None,
        client: WebhookDeliveryClient | None = None,
        clock: ScheduleClock | None = None,
    ):
        self.store = store
        self.client = client
        self.clock = clock
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_result: dict | None = None

    def _store(self) -> ReminderStore:
        return self.store or get_reminder_store()

    def _clock(self) -> ScheduleClock:
        return self.clock or default_clock()

    async def run_once(self, now: datetime | None = None) -> dict:
        """
        Run a single scheduler tick.

        Returns:
            dict: dispatch summary, or ``{"skipped": True}`` if a tick is in flight

        Raises:
            ReminderDispatchJobError: store unavailable
        """
        if self.is_running:
            logger.warning("Reminder dispatch already running, skipping this tick")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        store = self._store()
        clock = self._clock()

        try:
            async with ReminderDispatcher(store, client=self.client, clock=clock) as dispatcher:
                summary = await dispatcher.run_once(now)

            touched = {result.reminder_id for result in summary.results}
            if touched:
                try:
                    await ReminderService(store, clock=clock).refresh_next_runs(reminder_ids=touched)
                except Exception as e:
                    logger.warning("Failed to refresh next runs after tick", error=str(e))

            self.last_run_time = summary.started_at
            self.last_result = summary.to_dict()
            return self.last_result

        except StoreUnavailable as e:
            logger.error("Reminder dispatch failed", error=str(e), operation=e.operation)
            raise ReminderDispatchJobError(
                f"Reminder dispatch failed: {e}", operation="run_once"
            ) from e

        finally:
            self.is_running = False

    async def execute(self, reminder_id: str, time_slot_id: str | None = None) -> dict:
        """Manual execution of one reminder (optionally one slot)."""
        store = self._store()
        try:
            async with ReminderDispatcher(store, client=self.client, clock=self._clock()) as dispatcher:
                summary = await dispatcher.execute_now(reminder_id, time_slot_id)
        except StoreUnavailable as e:
            logger.error("Manual execution failed", reminder_id=reminder_id, error=str(e))
            raise ReminderDispatchJobError(
                f"Manual execution failed: {e}", operation="execute"
            ) from e

        result = summary.to_dict()
        result["reminder_id"] = reminder_id
        return result

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_result": self.last_result,
        }


reminder_dispatch_job = ReminderDispatchJob()


async def run_scheduled_tick() -> dict:
    """One tick with store setup/teardown, for cron."""
    store = get_reminder_store()
    await store.initialize()
    try:
        return await reminder_dispatch_job.run_once()
    finally:
        await store.close()


async def run_manual_execution(reminder_id: str, time_slot_id: str | None = None) -> dict:
    store = get_reminder_store()
    await store.initialize()
    try:
        return await reminder_dispatch_job.execute(reminder_id, time_slot_id)
    finally:
        await store.close()


async def start_reminder_scheduler():
    """
    Long-running alternative to cron: one tick at the top of every minute.
    """
    store = get_reminder_store()
    await store.initialize()
    clock = default_clock()
    logger.info("Starting reminder scheduler", interval_seconds=TICK_INTERVAL_SECONDS)

    try:
        while True:
            try:
                await reminder_dispatch_job.run_once()
            except ReminderDispatchJobError as e:
                logger.error("Error in reminder scheduler", error=str(e))

            now = clock.now()
            await asyncio.sleep(TICK_INTERVAL_SECONDS - now.second - now.microsecond / 1_000_000)
    finally:
        await store.close()
