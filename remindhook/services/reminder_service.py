"""
Reminder lifecycle service.

Validated create/update/toggle/delete and JSON import/export of reminders.
This is the only place that assigns TimeSlot ids and (re)computes nextRuns;
store gateways persist whatever they are given.
"""

import copy
import re
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from remindhook.errors import InvalidScheduleConfig, ReminderNotFound, UnsupportedPlatform
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import (
    MAX_MESSAGE_CONTENT_LENGTH,
    MAX_REMINDER_NAME_LENGTH,
    MAX_TIME_SLOTS,
    WEEKDAY_CODES,
    ImportResult,
    Reminder,
    ReminderDraft,
    ReminderPatch,
    TimeSlot,
    is_epoch_zero,
)
from remindhook.repositories.reminder_store import ReminderStore, Subscription
from remindhook.services.schedule_calculator import ScheduleClock, calculate_next_runs, default_clock
from remindhook.services.webhooks.adapters import CustomAdapter
from remindhook.services.webhooks.delivery_client import ALLOWED_CUSTOM_METHODS
from remindhook.services.webhooks.registry import get_adapter

logger = get_logger(__name__)

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

# Allowed message types per platformConfig section
_MESSAGE_TYPES = {
    "wechat": ("msgtype", ("text", "markdown")),
    "dingtalk": ("msgtype", ("text", "markdown")),
    "feishu": ("msg_type", ("text", "rich_text")),
}


def new_slot_id() -> str:
    return f"slot_{uuid.uuid4().hex[:12]}"


def normalize_time(value: str) -> str:
    """Validate ``H:MM``/``HH:MM`` and return zero-padded ``HH:MM``."""
    text = str(value or "").strip()
    if not TIME_PATTERN.match(text):
        raise InvalidScheduleConfig(f"Invalid time format: {value!r} (expected HH:MM)", field="timeSlots.time")
    hour, minute = text.split(":")
    return f"{int(hour):02d}:{minute}"


def normalize_days(days: Iterable[str]) -> list[str]:
    codes = {str(day).strip() for day in days}
    unknown = codes - set(WEEKDAY_CODES)
    if unknown:
        raise InvalidScheduleConfig(f"Invalid weekday codes: {sorted(unknown)}", field="days")
    if not codes:
        raise InvalidScheduleConfig("At least one day must be selected", field="days")
    return [code for code in WEEKDAY_CODES if code in codes]


def is_http_url(url: str) -> bool:
    """Deliveries go over HTTP, so saved webhook URLs must be absolute http(s) URLs."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_time_slots(time_slots: list[TimeSlot]) -> list[TimeSlot]:
    """
    Validate 1..MAX_TIME_SLOTS slots with at least one active.

    Slots keep their id when they carry a unique one; others get a fresh id.
    """
    if not time_slots:
        raise InvalidScheduleConfig("At least one time slot is required", field="timeSlots")
    if len(time_slots) > MAX_TIME_SLOTS:
        raise InvalidScheduleConfig(
            f"At most {MAX_TIME_SLOTS} time slots are allowed", field="timeSlots"
        )
    if not any(slot.is_active for slot in time_slots):
        raise InvalidScheduleConfig("At least one time slot must be active", field="timeSlots")

    seen: set[str] = set()
    normalized = []
    for slot in time_slots:
        slot_id = slot.id if slot.id and slot.id not in seen else new_slot_id()
        seen.add(slot_id)
        if slot.description is not None and not isinstance(slot.description, str):
            raise InvalidScheduleConfig(
                "Time slot description must be text", field="timeSlots.description"
            )
        description = (slot.description or "").strip() or None
        normalized.append(
            TimeSlot(
                id=slot_id,
                time=normalize_time(slot.time),
                is_active=bool(slot.is_active),
                description=description,
            )
        )
    return normalized


def _validate_section(section: str, options: Any) -> None:
    if not isinstance(options, dict):
        raise InvalidScheduleConfig(
            f"platformConfig.{section} must be an object", field=f"platformConfig.{section}"
        )

    if section in _MESSAGE_TYPES:
        key, allowed = _MESSAGE_TYPES[section]
        value = options.get(key)
        if value is not None and value not in allowed:
            raise InvalidScheduleConfig(
                f"Unsupported {key} {value!r} for {section}", field=f"platformConfig.{section}.{key}"
            )
        return

    if section == "custom":
        method = str(options.get("method") or "POST").upper()
        if method not in ALLOWED_CUSTOM_METHODS:
            raise InvalidScheduleConfig(
                f"Unsupported HTTP method {method!r}", field="platformConfig.custom.method"
            )
        headers = options.get("headers") or {}
        if not isinstance(headers, dict):
            raise InvalidScheduleConfig(
                "Custom headers must be an object", field="platformConfig.custom.headers"
            )
        # Rendering a sample surfaces template errors at save time
        CustomAdapter().format_message("", options)


def validate_reminder(reminder: Reminder) -> Reminder:
    """
    Validate and normalise a full reminder in place.

    Raises:
        InvalidScheduleConfig: any field outside its allowed range
        UnsupportedPlatform: platform has no adapter
    """
    adapter = get_adapter(reminder.platform)
    reminder.platform = adapter.platform.value

    reminder.name = (reminder.name or "").strip()
    if not reminder.name:
        raise InvalidScheduleConfig("Reminder name is required", field="name")
    if len(reminder.name) > MAX_REMINDER_NAME_LENGTH:
        raise InvalidScheduleConfig(
            f"Reminder name must be at most {MAX_REMINDER_NAME_LENGTH} characters", field="name"
        )

    if not (reminder.message_content or "").strip():
        raise InvalidScheduleConfig("Message content is required", field="messageContent")
    if len(reminder.message_content) > MAX_MESSAGE_CONTENT_LENGTH:
        raise InvalidScheduleConfig(
            f"Message content must be at most {MAX_MESSAGE_CONTENT_LENGTH} characters",
            field="messageContent",
        )

    reminder.webhook_url = (reminder.webhook_url or "").strip()
    if not is_http_url(reminder.webhook_url):
        raise InvalidScheduleConfig("Webhook URL must be an absolute http(s) URL", field="webhookUrl")

    reminder.time_slots = normalize_time_slots(reminder.time_slots)
    reminder.days = normalize_days(reminder.days)

    config = dict(reminder.platform_config or {})
    section = adapter.config_section
    if section is not None:
        if section not in config:
            config[section] = adapter.get_default_config()
        _validate_section(section, config[section])
    reminder.platform_config = config

    if not adapter.validate_url(reminder.webhook_url):
        logger.info(
            "Webhook URL does not match platform signature",
            platform=reminder.platform,
        )

    return reminder


class ReminderService:
    """Reminder lifecycle on top of a store gateway."""

    def __init__(self, store: ReminderStore, clock: ScheduleClock | None = None):
        self.store = store
        self.clock = clock or default_clock()

    def _next_runs(self, reminder: Reminder) -> list[datetime]:
        return calculate_next_runs(reminder.time_slots, reminder.days, clock=self.clock)

    async def _require(self, reminder_id: str) -> Reminder:
        reminder = await self.store.get(reminder_id)
        if reminder is None:
            raise ReminderNotFound(reminder_id)
        return reminder

    async def create_reminder(self, owner: str, draft: ReminderDraft) -> Reminder:
        now = datetime.now(UTC)
        reminder = Reminder(
            id="",
            owner=owner,
            name=draft.name,
            platform=draft.platform,
            webhook_url=draft.webhook_url,
            message_content=draft.message_content,
            time_slots=[copy.copy(slot) for slot in draft.time_slots],
            days=list(draft.days),
            is_active=draft.is_active,
            platform_config=copy.deepcopy(draft.platform_config or {}),
            execution_count=0,
            created_at=now,
            updated_at=now,
        )
        # Ids from the caller are ignored on create
        for slot in reminder.time_slots:
            slot.id = ""

        validate_reminder(reminder)
        reminder.next_runs = self._next_runs(reminder)

        created = await self.store.create(reminder)
        logger.info(
            "Reminder created",
            reminder_id=created.id,
            owner=owner,
            platform=created.platform,
            time_slots=len(created.time_slots),
        )
        return created

    async def update_reminder(self, reminder_id: str, patch: ReminderPatch) -> Reminder:
        current = await self._require(reminder_id)
        candidate = copy.deepcopy(current)

        for name in (
            "name",
            "platform",
            "webhook_url",
            "message_content",
            "days",
            "is_active",
            "platform_config",
        ):
            value = getattr(patch, name)
            if value is not None:
                setattr(candidate, name, copy.deepcopy(value))
        if patch.time_slots is not None:
            candidate.time_slots = [copy.copy(slot) for slot in patch.time_slots]

        # Options of the previous platform do not carry over to the new one
        if patch.platform is not None and patch.platform != current.platform and patch.platform_config is None:
            candidate.platform_config = {}

        validate_reminder(candidate)

        schedule_changed = (
            [slot.to_document() for slot in candidate.time_slots]
            != [slot.to_document() for slot in current.time_slots]
            or candidate.days != current.days
            or len(current.next_runs) != len(current.time_slots)
        )

        changes: dict[str, Any] = {
            "name": candidate.name,
            "platform": candidate.platform,
            "webhookUrl": candidate.webhook_url,
            "messageContent": candidate.message_content,
            "timeSlots": [slot.to_document() for slot in candidate.time_slots],
            "days": candidate.days,
            "isActive": candidate.is_active,
            "platformConfig": candidate.platform_config,
            "updatedAt": datetime.now(UTC).isoformat(),
        }
        if schedule_changed:
            changes["nextRuns"] = [run.isoformat() for run in self._next_runs(candidate)]

        updated = await self.store.update(reminder_id, changes)
        if updated is None:
            raise ReminderNotFound(reminder_id)

        logger.info("Reminder updated", reminder_id=reminder_id, schedule_changed=schedule_changed)
        return updated

    async def toggle_reminder(self, reminder_id: str, is_active: bool) -> Reminder:
        reminder = await self._require(reminder_id)
        updated = await self.store.update(
            reminder_id,
            {
                "isActive": bool(is_active),
                "nextRuns": [run.isoformat() for run in self._next_runs(reminder)],
                "updatedAt": datetime.now(UTC).isoformat(),
            },
        )
        if updated is None:
            raise ReminderNotFound(reminder_id)

        logger.info("Reminder toggled", reminder_id=reminder_id, is_active=bool(is_active))
        return updated

    async def toggle_time_slot(self, reminder_id: str, time_slot_id: str, is_active: bool) -> Reminder:
        """
        Flip one slot on or off.

        Turning off the last active slot is allowed; the reminder simply
        stops firing until a slot is re-enabled.
        """
        reminder = await self._require(reminder_id)
        slot = reminder.find_slot(time_slot_id)
        if slot is None:
            raise ReminderNotFound(reminder_id, time_slot_id)

        slot.is_active = bool(is_active)
        updated = await self.store.update(
            reminder_id,
            {
                "timeSlots": [item.to_document() for item in reminder.time_slots],
                "nextRuns": [run.isoformat() for run in self._next_runs(reminder)],
                "updatedAt": datetime.now(UTC).isoformat(),
            },
        )
        if updated is None:
            raise ReminderNotFound(reminder_id)

        logger.info(
            "Time slot toggled",
            reminder_id=reminder_id,
            time_slot_id=time_slot_id,
            is_active=bool(is_active),
        )
        return updated

    async def delete_reminder(self, reminder_id: str) -> None:
        if not await self.store.delete(reminder_id):
            raise ReminderNotFound(reminder_id)
        logger.info("Reminder deleted", reminder_id=reminder_id)

    async def batch_delete_reminders(self, reminder_ids: list[str]) -> int:
        deleted = await self.store.batch_delete(reminder_ids)
        logger.info("Reminders batch deleted", requested=len(reminder_ids), deleted=deleted)
        return deleted

    async def get_reminder(self, reminder_id: str) -> Reminder:
        return await self._require(reminder_id)

    async def list_reminders(self, owner: str) -> list[Reminder]:
        return await self.store.list_by_owner(owner)

    async def subscribe(self, owner: str, callback: Callable[[list[Reminder]], Any]) -> Subscription:
        return await self.store.subscribe_owner(owner, callback)

    async def export_reminders(self, owner: str) -> list[dict]:
        reminders = await self.store.list_by_owner(owner)
        return [reminder.to_export() for reminder in reminders]

    async def import_reminders(self, owner: str, payload: list[Any]) -> ImportResult:
        """Create one reminder per valid entry; invalid entries are reported, not fatal."""
        result = ImportResult()

        for index, item in enumerate(payload):
            try:
                draft = ReminderDraft.from_export(item)
                created = await self.create_reminder(owner, draft)
            except (InvalidScheduleConfig, UnsupportedPlatform, TypeError, ValueError) as e:
                result.invalid.append({"index": index, "error": str(e)})
                continue
            result.created_ids.append(created.id)

        logger.info(
            "Reminders imported",
            owner=owner,
            created=len(result.created_ids),
            invalid=len(result.invalid),
        )
        return result

    async def refresh_next_runs(
        self, owner: str | None = None, reminder_ids: Iterable[str] | None = None
    ) -> int:
        """
        Recompute nextRuns for reminders with a past or misaligned entry.

        Returns the number of reminders rewritten.
        """
        now = self.clock.now()
        if reminder_ids is not None:
            reminders = [r for r in [await self.store.get(rid) for rid in reminder_ids] if r]
        elif owner is not None:
            reminders = await self.store.list_by_owner(owner)
        else:
            reminders = await self.store.list_all()

        refreshed = 0
        for reminder in reminders:
            stale = len(reminder.next_runs) != len(reminder.time_slots) or any(
                slot.is_active and (is_epoch_zero(run) or run <= now)
                for slot, run in zip(reminder.time_slots, reminder.next_runs)
            )
            if not stale:
                continue
            next_runs = calculate_next_runs(reminder.time_slots, reminder.days, now=now, clock=self.clock)
            await self.store.update(reminder.id, {"nextRuns": [run.isoformat() for run in next_runs]})
            refreshed += 1

        if refreshed:
            logger.debug("Next runs refreshed", refreshed=refreshed)
        return refreshed
