"""
Reminder dispatcher.

Finds reminders due at the current minute, formats each matched time slot
through its platform adapter, POSTs the payload and records the outcome.
A failure in one (reminder, time slot) delivery never affects its siblings;
a store failure while looking up candidates aborts the tick.
"""

import asyncio
import time
from datetime import datetime

from remindhook.config import settings
from remindhook.errors import (
    DeliveryFailure,
    InvalidScheduleConfig,
    ReminderNotFound,
    UnsupportedPlatform,
)
from remindhook.infrastructure.observability.logging import get_logger, log_delivery
from remindhook.models.domain.reminder_domain import (
    DeliveryResult,
    DispatchSummary,
    ExecutionStatus,
    ExecutionTrigger,
    Reminder,
    TimeSlot,
    weekday_code,
)
from remindhook.repositories.reminder_store import ReminderStore
from remindhook.services.execution_log_service import ExecutionLogService
from remindhook.services.schedule_calculator import ScheduleClock, default_clock, format_hhmm
from remindhook.services.webhooks.delivery_client import WebhookDeliveryClient
from remindhook.services.webhooks.registry import get_adapter

logger = get_logger(__name__)


def compose_content(reminder: Reminder, slot: TimeSlot) -> str:
    """Slot description (if any) on its own line above the message."""
    if slot.description:
        return f"{slot.description}\n{reminder.message_content}"
    return reminder.message_content


def due_slots(reminder: Reminder, day_code: str, hhmm: str) -> list[TimeSlot]:
    """Active slots whose time equals ``hhmm`` on an active day."""
    if not reminder.is_active or day_code not in reminder.days:
        return []
    return [slot for slot in reminder.time_slots if slot.is_active and slot.time == hhmm]


class DispatchMetrics:
    """Metrics tracking for one dispatcher pass."""

    def __init__(self):
        self.reset()

    def reset(self, trigger: ExecutionTrigger = ExecutionTrigger.SCHEDULED):
        """Reset all metrics for a new pass."""
        self.trigger = trigger
        self.start_time = time.time()
        self.matched = 0
        self.succeeded = 0
        self.failed = 0
        self.counter_errors = 0
        self.total_duration_ms = 0.0
        self.errors: list[dict] = []

    def record_success(self, result: DeliveryResult):
        self.succeeded += 1

    def record_failure(self, result: DeliveryResult):
        self.failed += 1
        self.errors.append(
            {
                "reminder_id": result.reminder_id,
                "time_slot_id": result.time_slot_id,
                "status_code": result.status_code,
                "error": result.error,
            }
        )

    def record_counter_error(self, reminder_id: str, error: str):
        self.counter_errors += 1
        logger.error(
            "Execution counter update failed",
            reminder_id=reminder_id,
            error=error,
            job_run="reminder_dispatch",
        )

    def finalize(self):
        self.total_duration_ms = round((time.time() - self.start_time) * 1000, 2)

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        return {
            "job_run": "reminder_dispatch",
            "trigger": self.trigger.value,
            "total_duration_ms": self.total_duration_ms,
            "matched": self.matched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "counter_errors": self.counter_errors,
            "success_rate_percent": round(
                (self.succeeded / self.matched * 100) if self.matched > 0 else 0, 2
            ),
            "errors_count": len(self.errors),
        }


class ReminderDispatcher:
    """
    Executes due reminders.

    One delivery client is shared by every delivery of a pass; concurrent
    deliveries are bounded by ``max_concurrency``.
    """

    def __init__(
        self,
        store: ReminderStore,
        client: WebhookDeliveryClient | None = None,
        clock: ScheduleClock | None = None,
        max_concurrency: int | None = None,
    ):
        self.store = store
        self.clock = clock or default_clock()
        self.max_concurrency = max(1, max_concurrency or settings.DISPATCH_MAX_CONCURRENCY)
        self.execution_log = ExecutionLogService(store)
        self.last_metrics: DispatchMetrics | None = None
        self._owns_client = client is None
        self.client = client or WebhookDeliveryClient()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()

    async def __aenter__(self) -> "ReminderDispatcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def run_once(self, now: datetime | None = None) -> DispatchSummary:
        """
        One scheduler tick.

        Matches the current HH:MM exactly against active slots of active
        reminders whose days include today.

        Raises:
            StoreUnavailable: candidate query failed
        """
        now = self.clock.to_local(now) if now else self.clock.now()
        day_code = weekday_code(now)
        hhmm = format_hhmm(now)

        candidates = await self.store.find_due_candidates(day_code)
        work = [
            (reminder, slot)
            for reminder in candidates
            for slot in due_slots(reminder, day_code, hhmm)
        ]

        logger.info(
            "Scheduler tick",
            day_code=day_code,
            time=hhmm,
            candidates=len(candidates),
            matched=len(work),
        )
        return await self._dispatch(work, ExecutionTrigger.SCHEDULED, now)

    async def execute_now(self, reminder_id: str, time_slot_id: str | None = None) -> DispatchSummary:
        """
        Deliver a reminder immediately, ignoring day and time.

        Raises:
            ReminderNotFound: unknown reminder or time slot
            InvalidScheduleConfig: reminder inactive, or no active slot to run
        """
        reminder = await self.store.get(reminder_id)
        if reminder is None:
            raise ReminderNotFound(reminder_id)
        if not reminder.is_active:
            raise InvalidScheduleConfig(
                f"Reminder {reminder_id} is inactive", field="isActive", operation="execute_now"
            )

        if time_slot_id:
            slot = reminder.find_slot(time_slot_id)
            if slot is None:
                raise ReminderNotFound(reminder_id, time_slot_id)
            slots = [slot]
        else:
            slots = reminder.active_slots()
            if not slots:
                raise InvalidScheduleConfig(
                    f"Reminder {reminder_id} has no active time slots",
                    field="timeSlots",
                    operation="execute_now",
                )

        logger.info(
            "Manual execution requested",
            reminder_id=reminder_id,
            time_slot_id=time_slot_id,
            slots=len(slots),
        )
        return await self._dispatch(
            [(reminder, slot) for slot in slots], ExecutionTrigger.MANUAL, self.clock.now()
        )

    async def _dispatch(
        self,
        work: list[tuple[Reminder, TimeSlot]],
        trigger: ExecutionTrigger,
        started_at: datetime,
    ) -> DispatchSummary:
        metrics = DispatchMetrics()
        metrics.reset(trigger)
        metrics.matched = len(work)
        self.last_metrics = metrics

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(reminder: Reminder, slot: TimeSlot) -> DeliveryResult:
            async with semaphore:
                return await self._deliver(reminder, slot, trigger, metrics)

        results = list(await asyncio.gather(*(bounded(r, s) for r, s in work)))

        metrics.finalize()
        summary = DispatchSummary(
            trigger=trigger,
            started_at=started_at,
            matched=metrics.matched,
            succeeded=metrics.succeeded,
            failed=metrics.failed,
            duration_ms=metrics.total_duration_ms,
            results=results,
        )

        if work:
            logger.info("Dispatch completed", **metrics.to_dict())
        return summary

    async def _deliver(
        self,
        reminder: Reminder,
        slot: TimeSlot,
        trigger: ExecutionTrigger,
        metrics: DispatchMetrics,
    ) -> DeliveryResult:
        """Deliver one (reminder, time slot); all delivery-local errors end up in the result."""
        start = time.time()
        status_code: int | None = None
        error: str | None = None
        config = reminder.config_for_platform()

        try:
            adapter = get_adapter(reminder.platform)
            payload = adapter.format_message(compose_content(reminder, slot), config)
            status_code = await self.client.send(
                reminder.webhook_url,
                payload,
                platform=adapter.platform.value,
                platform_config=config,
            )
        except UnsupportedPlatform as e:
            error = str(e)
            logger.error(
                "Stored reminder has unsupported platform",
                reminder_id=reminder.id,
                platform=reminder.platform,
            )
        except DeliveryFailure as e:
            error = str(e)
            status_code = e.status_code
        except InvalidScheduleConfig as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.error(
                "Unexpected delivery error",
                reminder_id=reminder.id,
                time_slot_id=slot.id,
                error=error,
            )

        executed_at = self.clock.now()
        result = DeliveryResult(
            reminder_id=reminder.id,
            time_slot_id=slot.id,
            success=error is None,
            status_code=status_code,
            error=error,
            duration_ms=round((time.time() - start) * 1000, 2),
        )

        log_delivery(
            reminder.id,
            slot.id,
            reminder.platform,
            result.success,
            result.duration_ms,
            status_code=status_code,
            error=error,
        )

        await self.execution_log.record(
            reminder.id,
            slot.id,
            ExecutionStatus.SUCCESS if result.success else ExecutionStatus.FAILED,
            executed_at,
            error_message=error,
            response_status=status_code,
            trigger=trigger,
        )

        if not result.success:
            metrics.record_failure(result)
            return result

        metrics.record_success(result)
        try:
            await self.store.increment_execution(reminder.id, executed_at)
        except Exception as e:
            metrics.record_counter_error(reminder.id, str(e))
        return result
