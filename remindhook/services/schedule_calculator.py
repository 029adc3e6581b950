"""
Schedule calculation for reminder time slots.

Turns {time slots, active days} into one concrete next-run timestamp per
slot, index-aligned with the slot list. Time slots are wall-clock times in
the scheduling time zone (SCHEDULER_TIMEZONE, or host local time when unset).
"""

from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from remindhook.config import settings
from remindhook.models.domain.reminder_domain import EPOCH_ZERO, TimeSlot, weekday_code

SEARCH_HORIZON_DAYS = 14


class ScheduleClock:
    """Wall clock for the scheduling time zone."""

    def __init__(self, timezone_name: str | None = None):
        self.timezone_name = timezone_name
        self._zone: tzinfo | None = ZoneInfo(timezone_name) if timezone_name else None

    def now(self) -> datetime:
        """Current aware datetime in the scheduling zone."""
        if self._zone is not None:
            return datetime.now(self._zone)
        return datetime.now().astimezone()

    def to_local(self, moment: datetime) -> datetime:
        """Express an aware datetime in the scheduling zone."""
        if moment.tzinfo is None:
            return self.localize(moment)
        if self._zone is not None:
            return moment.astimezone(self._zone)
        return moment.astimezone()

    def localize(self, wall_time: datetime) -> datetime:
        """Attach the scheduling zone to a naive wall-clock datetime."""
        if self._zone is not None:
            return wall_time.replace(tzinfo=self._zone)
        # Naive astimezone() interprets the value as host local time (DST aware)
        return wall_time.astimezone()

    def at(self, day: date, hour: int, minute: int) -> datetime:
        return self.localize(datetime.combine(day, time(hour, minute)))

    def start_of_day(self, moment: datetime | None = None) -> datetime:
        local = self.to_local(moment) if moment else self.now()
        return self.at(local.date(), 0, 0)


def default_clock() -> ScheduleClock:
    return ScheduleClock(settings.SCHEDULER_TIMEZONE)


def format_hhmm(moment: datetime) -> str:
    return f"{moment.hour:02d}:{moment.minute:02d}"


def next_run_for_slot(
    slot: TimeSlot,
    days: list[str] | set[str],
    now: datetime,
    clock: ScheduleClock,
) -> datetime:
    """
    Next strictly-future firing of one slot.

    Scans today plus the following days up to the horizon. Returns EPOCH_ZERO
    for inactive slots and when no day in the horizon is selected.
    """
    if not slot.is_active:
        return EPOCH_ZERO

    active_days = {str(day) for day in days}
    local_now = clock.to_local(now)

    for offset in range(SEARCH_HORIZON_DAYS):
        candidate_day = local_now.date() + timedelta(days=offset)
        candidate = clock.at(candidate_day, slot.hour, slot.minute)
        if weekday_code(candidate) in active_days and candidate > local_now:
            return candidate

    return EPOCH_ZERO


def calculate_next_runs(
    time_slots: list[TimeSlot],
    days: list[str] | set[str],
    now: datetime | None = None,
    clock: ScheduleClock | None = None,
) -> list[datetime]:
    """
    Compute next runs for every slot, index-aligned with ``time_slots``.

    Always recomputed in full: one edit to a time or a day can change which
    slot fires first.
    """
    clock = clock or default_clock()
    now = now or clock.now()
    return [next_run_for_slot(slot, days, now, clock) for slot in time_slots]
