# remindhook/models/api/reminder_response.py
"""
Reminder API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from remindhook.models.domain.reminder_domain import (
    ConnectionTestResult,
    ExecutionLogEntry,
    Reminder,
    ReminderStats,
    is_epoch_zero,
)


class TimeSlotResponse(BaseModel):
    id: str = Field(..., description="Slot ID")
    time: str = Field(..., description="HH:MM")
    is_active: bool = Field(..., description="Whether this slot fires")
    description: str | None = Field(None, description="Prefix line for the message")
    next_run: datetime | None = Field(None, description="Next firing; null when the slot never fires")


class ReminderResponse(BaseModel):
    """Response model for one reminder."""

    id: str = Field(..., description="Reminder ID")
    owner_id: str = Field(..., description="Owner")
    name: str = Field(..., description="Reminder name")
    platform: str = Field(..., description="Platform identifier")
    webhook_url: str = Field(..., description="Webhook URL")
    message_content: str = Field(..., description="Message text")
    time_slots: list[TimeSlotResponse] = Field(..., description="Daily trigger times")
    days: list[str] = Field(..., description="Weekday codes, 0 = Sunday")
    is_active: bool = Field(..., description="Whether the reminder fires")
    platform_config: dict[str, Any] = Field(default_factory=dict, description="Per-platform options")
    execution_count: int = Field(..., description="Successful deliveries so far")
    last_execution_time: datetime | None = Field(None, description="Last successful delivery")
    created_at: datetime | None = Field(None)
    updated_at: datetime | None = Field(None)

    @classmethod
    def from_domain(cls, reminder: Reminder) -> "ReminderResponse":
        slots = []
        for index, slot in enumerate(reminder.time_slots):
            next_run = reminder.next_runs[index] if index < len(reminder.next_runs) else None
            slots.append(
                TimeSlotResponse(
                    id=slot.id,
                    time=slot.time,
                    is_active=slot.is_active,
                    description=slot.description,
                    next_run=None if is_epoch_zero(next_run) else next_run,
                )
            )

        return cls(
            id=reminder.id,
            owner_id=reminder.owner,
            name=reminder.name,
            platform=reminder.platform,
            webhook_url=reminder.webhook_url,
            message_content=reminder.message_content,
            time_slots=slots,
            days=reminder.days,
            is_active=reminder.is_active,
            platform_config=reminder.platform_config,
            execution_count=reminder.execution_count,
            last_execution_time=reminder.last_execution_time,
            created_at=reminder.created_at,
            updated_at=reminder.updated_at,
        )


class ReminderListResponse(BaseModel):
    reminders: list[ReminderResponse] = Field(..., description="Newest first")
    total: int = Field(..., description="Number of reminders")


class PlatformResponse(BaseModel):
    value: str = Field(..., description="Platform identifier")
    label: str = Field(..., description="Display name")
    icon: str = Field(..., description="Display icon")
    description: str = Field(..., description="Short description")
    config_section: str | None = Field(None, description="Key under platform_config")
    default_config: dict[str, Any] = Field(default_factory=dict, description="Default options")


class DetectPlatformResponse(BaseModel):
    platform: str | None = Field(None, description="Detected platform; null when unknown")


class PreviewMessageResponse(BaseModel):
    platform: str = Field(..., description="Platform identifier")
    preview: str = Field(..., description="Rendered text")
    payload: dict[str, Any] = Field(..., description="JSON body that would be sent")


class ConnectionTestResponse(BaseModel):
    success: bool = Field(..., description="2xx received")
    message: str = Field(..., description="Readable outcome")
    http_status: int | None = Field(None, description="HTTP status when a response was received")

    @classmethod
    def from_domain(cls, result: ConnectionTestResult) -> "ConnectionTestResponse":
        return cls(success=result.success, message=result.message, http_status=result.http_status)


class NextExecutionResponse(BaseModel):
    time: datetime
    reminder_id: str
    reminder_name: str
    time_slot_id: str


class ReminderStatsResponse(BaseModel):
    """Aggregate counts for an owner's reminders."""

    total: int
    active: int
    inactive: int
    total_executions: int
    today_executions: int
    next_execution: NextExecutionResponse | None = None

    @classmethod
    def from_domain(cls, stats: ReminderStats) -> "ReminderStatsResponse":
        next_execution = None
        if stats.next_execution is not None:
            next_execution = NextExecutionResponse(
                time=stats.next_execution.time,
                reminder_id=stats.next_execution.reminder_id,
                reminder_name=stats.next_execution.reminder_name,
                time_slot_id=stats.next_execution.time_slot_id,
            )
        return cls(
            total=stats.total,
            active=stats.active,
            inactive=stats.inactive,
            total_executions=stats.total_executions,
            today_executions=stats.today_executions,
            next_execution=next_execution,
        )


class ExecutionLogResponse(BaseModel):
    id: str
    reminder_id: str
    time_slot_id: str
    status: str = Field(..., description="success | failed")
    executed_at: datetime
    error_message: str | None = None
    response_status: int | None = None
    trigger: str = Field(..., description="scheduled | manual")

    @classmethod
    def from_domain(cls, entry: ExecutionLogEntry) -> "ExecutionLogResponse":
        return cls(
            id=entry.id,
            reminder_id=entry.reminder_id,
            time_slot_id=entry.time_slot_id,
            status=entry.status.value,
            executed_at=entry.executed_at,
            error_message=entry.error_message,
            response_status=entry.response_status,
            trigger=entry.trigger.value,
        )


class BatchDeleteResponse(BaseModel):
    deleted: int = Field(..., description="Reminders actually deleted")


class ImportRemindersResponse(BaseModel):
    created_ids: list[str] = Field(..., description="IDs of created reminders")
    invalid: list[dict[str, Any]] = Field(..., description="Rejected entries with index and error")


class ExportRemindersResponse(BaseModel):
    exported_at: datetime
    reminders: list[dict[str, Any]] = Field(..., description="Portable reminder entries")
