# remindhook/models/api/reminder_request.py
"""
Reminder API request models.
Used by routes for input validation; deeper rules (time format, active
slots, templates) are enforced by the reminder service.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from remindhook.models.domain.reminder_domain import (
    MAX_MESSAGE_CONTENT_LENGTH,
    MAX_REMINDER_NAME_LENGTH,
    MAX_TIME_SLOTS,
    ReminderDraft,
    ReminderPatch,
    TimeSlot,
)


class TimeSlotInput(BaseModel):
    """One time slot as submitted by the editor."""

    id: str | None = Field(default=None, description="Existing slot ID (omit for new slots)")
    time: str = Field(..., description="Time of day, HH:MM (24h)")
    is_active: bool = Field(default=True, description="Whether this slot fires")
    description: str | None = Field(default=None, max_length=100, description="Prefix line for the message")

    def to_domain(self) -> TimeSlot:
        return TimeSlot(
            id=self.id or "",
            time=self.time,
            is_active=self.is_active,
            description=self.description,
        )


class CreateReminderRequest(BaseModel):
    """Request for creating a reminder."""

    name: str = Field(..., min_length=1, max_length=MAX_REMINDER_NAME_LENGTH, description="Reminder name")
    platform: str = Field(..., description="Target platform identifier")
    webhook_url: str = Field(..., min_length=1, description="Webhook URL")
    message_content: str = Field(
        ..., min_length=1, max_length=MAX_MESSAGE_CONTENT_LENGTH, description="Message text"
    )
    time_slots: list[TimeSlotInput] = Field(
        ..., min_length=1, max_length=MAX_TIME_SLOTS, description="Daily trigger times"
    )
    days: list[str] = Field(..., min_length=1, description="Weekday codes, 0 = Sunday")
    is_active: bool = Field(default=True, description="Whether the reminder fires")
    platform_config: dict[str, Any] = Field(default_factory=dict, description="Per-platform options")

    def to_draft(self) -> ReminderDraft:
        return ReminderDraft(
            name=self.name,
            platform=self.platform,
            webhook_url=self.webhook_url,
            message_content=self.message_content,
            time_slots=[slot.to_domain() for slot in self.time_slots],
            days=self.days,
            is_active=self.is_active,
            platform_config=self.platform_config,
        )


class UpdateReminderRequest(BaseModel):
    """Request for updating a reminder; omitted fields stay unchanged."""

    name: str | None = Field(None, min_length=1, max_length=MAX_REMINDER_NAME_LENGTH)
    platform: str | None = Field(None)
    webhook_url: str | None = Field(None, min_length=1)
    message_content: str | None = Field(None, min_length=1, max_length=MAX_MESSAGE_CONTENT_LENGTH)
    time_slots: list[TimeSlotInput] | None = Field(None, min_length=1, max_length=MAX_TIME_SLOTS)
    days: list[str] | None = Field(None, min_length=1)
    is_active: bool | None = Field(None)
    platform_config: dict[str, Any] | None = Field(None)

    def to_patch(self) -> ReminderPatch:
        return ReminderPatch(
            name=self.name,
            platform=self.platform,
            webhook_url=self.webhook_url,
            message_content=self.message_content,
            time_slots=[slot.to_domain() for slot in self.time_slots] if self.time_slots else None,
            days=self.days,
            is_active=self.is_active,
            platform_config=self.platform_config,
        )


class ToggleRequest(BaseModel):
    is_active: bool = Field(..., description="New active state")


class BatchDeleteRequest(BaseModel):
    reminder_ids: list[str] = Field(..., min_length=1, max_length=500, description="Reminder IDs")


class DetectPlatformRequest(BaseModel):
    webhook_url: str = Field(..., min_length=1, description="Webhook URL to inspect")


class PreviewMessageRequest(BaseModel):
    """Render a message the way a platform will show it."""

    platform: str = Field(..., description="Target platform identifier")
    content: str = Field(..., max_length=MAX_MESSAGE_CONTENT_LENGTH, description="Message text")
    config: dict[str, Any] | None = Field(default=None, description="Platform options section")


class TestConnectionRequest(BaseModel):
    """Send a canned test message before saving."""

    platform: str = Field(..., description="Target platform identifier")
    webhook_url: str = Field(..., min_length=1, description="Webhook URL")
    config: dict[str, Any] | None = Field(default=None, description="Platform options section")


class ImportRemindersRequest(BaseModel):
    """Entries in export format; each is validated on its own."""

    reminders: list[Any] = Field(..., max_length=500, description="Exported reminder entries")


class ExecuteReminderRequest(BaseModel):
    """Manual execution trigger (body of PUT /reminders/execute)."""

    model_config = ConfigDict(populate_by_name=True)

    reminder_id: str = Field(..., min_length=1, alias="reminderId")
    time_slot_id: str | None = Field(default=None, alias="timeSlotId")
