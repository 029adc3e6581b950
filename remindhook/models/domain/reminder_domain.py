"""
Reminder Domain Models
Domain models for webhook reminders, their time slots and execution history.
Used by services and store gateways; documents are persisted with the
camelCase field names produced by ``to_document``.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from remindhook.errors import InvalidScheduleConfig

REMINDERS_COLLECTION = "webhook_reminders"
EXECUTION_LOGS_COLLECTION = "reminder_execution_logs"

MAX_TIME_SLOTS = 3
MAX_REMINDER_NAME_LENGTH = 100
MAX_MESSAGE_CONTENT_LENGTH = 1000

WEEKDAY_CODES = ("0", "1", "2", "3", "4", "5", "6")  # 0 = Sunday

# Next-run value for inactive slots and schedules with no reachable day
EPOCH_ZERO = datetime(1970, 1, 1, tzinfo=UTC)


class Platform(str, Enum):
    """Closed set of supported chat platforms."""

    WECHAT_WORK = "wechat_work"
    DINGTALK = "dingtalk"
    FEISHU = "feishu"
    SLACK = "slack"
    CUSTOM = "custom"


# platformConfig section key per platform (slack carries no options)
PLATFORM_CONFIG_SECTIONS = {
    Platform.WECHAT_WORK.value: "wechat",
    Platform.DINGTALK.value: "dingtalk",
    Platform.FEISHU.value: "feishu",
    Platform.CUSTOM.value: "custom",
}


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class ExecutionTrigger(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


def is_epoch_zero(value: datetime | None) -> bool:
    """True for the next-run sentinel (or a missing value)."""
    if value is None:
        return True
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value <= EPOCH_ZERO


def weekday_code(moment: datetime) -> str:
    """Weekday code with 0 = Sunday .. 6 = Saturday."""
    return str(moment.isoweekday() % 7)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: Any) -> datetime | None:
    """Parse ISO datetime string (or pass through datetimes)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(slots=True)
class TimeSlot:
    """One independently toggleable daily trigger."""

    id: str
    time: str  # "HH:MM", 24h, scheduling time zone
    is_active: bool = True
    description: str | None = None

    @property
    def hour(self) -> int:
        return int(self.time.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.time.split(":")[1])

    def to_document(self) -> dict:
        doc = {"id": self.id, "time": self.time, "isActive": self.is_active}
        if self.description:
            doc["description"] = self.description
        return doc

    @classmethod
    def from_document(cls, data: dict) -> "TimeSlot":
        return cls(
            id=str(data.get("id", "")),
            time=str(data.get("time", "")),
            is_active=bool(data.get("isActive", True)),
            description=data.get("description") or None,
        )


@dataclass(slots=True)
class Reminder:
    """A named recurring notification job."""

    id: str
    owner: str
    name: str
    platform: str
    webhook_url: str
    message_content: str
    time_slots: list[TimeSlot]
    days: list[str]
    is_active: bool = True
    platform_config: dict[str, Any] = field(default_factory=dict)
    execution_count: int = 0
    last_execution_time: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    next_runs: list[datetime] = field(default_factory=list)

    def find_slot(self, time_slot_id: str) -> TimeSlot | None:
        return next((slot for slot in self.time_slots if slot.id == time_slot_id), None)

    def active_slots(self) -> list[TimeSlot]:
        return [slot for slot in self.time_slots if slot.is_active]

    def config_for_platform(self) -> dict[str, Any] | None:
        """Return the platformConfig section that belongs to this reminder's platform."""
        section = PLATFORM_CONFIG_SECTIONS.get(self.platform)
        if section is None:
            return None
        return self.platform_config.get(section)

    def to_document(self) -> dict:
        """Convert to the persisted document shape."""
        return {
            "id": self.id,
            "userId": self.owner,
            "name": self.name,
            "platform": self.platform,
            "webhookUrl": self.webhook_url,
            "messageContent": self.message_content,
            "timeSlots": [slot.to_document() for slot in self.time_slots],
            "days": list(self.days),
            "isActive": self.is_active,
            "platformConfig": self.platform_config,
            "executionCount": self.execution_count,
            "lastExecutionTime": _to_iso(self.last_execution_time),
            "createdAt": _to_iso(self.created_at),
            "updatedAt": _to_iso(self.updated_at),
            "nextRuns": [run.isoformat() for run in self.next_runs],
        }

    @classmethod
    def from_document(cls, data: dict) -> "Reminder":
        return cls(
            id=str(data.get("id", "")),
            owner=str(data.get("userId", "")),
            name=data.get("name", ""),
            platform=data.get("platform", ""),
            webhook_url=data.get("webhookUrl", ""),
            message_content=data.get("messageContent", ""),
            time_slots=[TimeSlot.from_document(slot) for slot in data.get("timeSlots", [])],
            days=[str(day) for day in data.get("days", [])],
            is_active=bool(data.get("isActive", True)),
            platform_config=data.get("platformConfig") or {},
            execution_count=int(data.get("executionCount") or 0),
            last_execution_time=_parse_iso(data.get("lastExecutionTime")),
            created_at=_parse_iso(data.get("createdAt")),
            updated_at=_parse_iso(data.get("updatedAt")),
            next_runs=[_parse_iso(run) or EPOCH_ZERO for run in data.get("nextRuns", [])],
        )

    def to_export(self) -> dict:
        """Portable form without ids, counters or timestamps."""
        return {
            "name": self.name,
            "platform": self.platform,
            "webhookUrl": self.webhook_url,
            "messageContent": self.message_content,
            "timeSlots": [
                {"time": slot.time, "isActive": slot.is_active, "description": slot.description}
                for slot in self.time_slots
            ],
            "days": list(self.days),
            "isActive": self.is_active,
            "platformConfig": self.platform_config,
        }


@dataclass(slots=True)
class ExecutionLogEntry:
    """Immutable record of one delivery attempt."""

    id: str
    reminder_id: str
    time_slot_id: str
    status: ExecutionStatus
    executed_at: datetime
    error_message: str | None = None
    response_status: int | None = None
    trigger: ExecutionTrigger = ExecutionTrigger.SCHEDULED

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "reminderId": self.reminder_id,
            "timeSlotId": self.time_slot_id,
            "status": self.status.value,
            "executedAt": self.executed_at.isoformat(),
            "errorMessage": self.error_message,
            "responseStatus": self.response_status,
            "trigger": self.trigger.value,
        }

    @classmethod
    def from_document(cls, data: dict) -> "ExecutionLogEntry":
        return cls(
            id=str(data.get("id", "")),
            reminder_id=str(data.get("reminderId", "")),
            time_slot_id=str(data.get("timeSlotId", "")),
            status=ExecutionStatus(data.get("status", ExecutionStatus.FAILED.value)),
            executed_at=_parse_iso(data.get("executedAt")) or EPOCH_ZERO,
            error_message=data.get("errorMessage"),
            response_status=data.get("responseStatus"),
            trigger=ExecutionTrigger(data.get("trigger", ExecutionTrigger.SCHEDULED.value)),
        )


@dataclass(slots=True)
class NextExecution:
    time: datetime
    reminder_id: str
    reminder_name: str
    time_slot_id: str


@dataclass(slots=True)
class ReminderStats:
    """Read-only aggregate over an owner's reminders."""

    total: int = 0
    active: int = 0
    inactive: int = 0
    total_executions: int = 0
    today_executions: int = 0
    next_execution: NextExecution | None = None


@dataclass(slots=True)
class ConnectionTestResult:
    success: bool
    message: str
    http_status: int | None = None


@dataclass(slots=True)
class DeliveryResult:
    """Outcome of a single (reminder, time slot) webhook delivery."""

    reminder_id: str
    time_slot_id: str
    success: bool
    status_code: int | None = None
    error: str | None = None
    duration_ms: float = 0.0


def _slot_from_export(slot: dict) -> TimeSlot:
    for key in ("time", "description"):
        value = slot.get(key)
        if value is not None and not isinstance(value, str):
            raise InvalidScheduleConfig(
                f"Time slot {key} must be text, got {type(value).__name__}",
                field=f"timeSlots.{key}",
                operation="import",
            )
    return TimeSlot(
        id="",
        time=slot.get("time") or "",
        is_active=slot.get("isActive") is not False,
        description=slot.get("description") or None,
    )


@dataclass(slots=True)
class ReminderDraft:
    """User input for a new reminder (slot ids may still be empty)."""

    name: str
    platform: str
    webhook_url: str
    message_content: str
    time_slots: list[TimeSlot]
    days: list[str]
    is_active: bool = True
    platform_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_export(cls, data: dict) -> "ReminderDraft":
        """Build a draft from an exported (camelCase) reminder document."""
        if not isinstance(data, dict):
            raise TypeError("Reminder entry must be an object")
        return cls(
            name=str(data.get("name") or ""),
            platform=str(data.get("platform") or ""),
            webhook_url=str(data.get("webhookUrl") or ""),
            message_content=str(data.get("messageContent") or ""),
            time_slots=[
                _slot_from_export(slot)
                for slot in (data.get("timeSlots") or [])
                if isinstance(slot, dict)
            ],
            days=[str(day) for day in (data.get("days") or [])],
            is_active=data.get("isActive") is not False,
            platform_config=dict(data.get("platformConfig") or {}),
        )


@dataclass(slots=True)
class ReminderPatch:
    """Partial update; None means "leave unchanged"."""

    name: str | None = None
    platform: str | None = None
    webhook_url: str | None = None
    message_content: str | None = None
    time_slots: list[TimeSlot] | None = None
    days: list[str] | None = None
    is_active: bool | None = None
    platform_config: dict[str, Any] | None = None


@dataclass(slots=True)
class ImportResult:
    created_ids: list[str] = field(default_factory=list)
    invalid: list[dict] = field(default_factory=list)  # {"index": int, "error": str}


@dataclass(slots=True)
class DispatchSummary:
    """Outcome of one dispatcher pass (scheduled tick or manual run)."""

    trigger: ExecutionTrigger
    started_at: datetime
    matched: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: float = 0.0
    results: list[DeliveryResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "trigger": self.trigger.value,
            "started_at": self.started_at.isoformat(),
            "matched": self.matched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
        }
