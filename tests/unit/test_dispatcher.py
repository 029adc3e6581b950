import json
from unittest.mock import AsyncMock

import httpx
import pytest

from remindhook.errors import InvalidScheduleConfig, ReminderNotFound, StoreUnavailable
from remindhook.models.domain.reminder_domain import (
    ExecutionStatus,
    ExecutionTrigger,
    TimeSlot,
)
from remindhook.services.dispatcher import ReminderDispatcher, compose_content


@pytest.fixture
def dispatcher_factory(store, recorder):
    def _make(clock, **kwargs):
        return ReminderDispatcher(store, client=recorder.client(), clock=clock, **kwargs)

    return _make


@pytest.mark.asyncio
async def test_monday_tick_delivers_and_counts(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am):
    reminder = await store.create(
        reminder_factory(message_content="Standup", time_slots=[TimeSlot(id="slot_a", time="09:00")])
    )

    summary = await dispatcher_factory(clock).run_once(monday_9am)

    assert (summary.matched, summary.succeeded, summary.failed) == (1, 1, 0)
    body = json.loads(recorder.requests[0].content)
    assert body["text"]["content"].startswith("@所有人")
    assert body["text"]["content"].endswith("Standup")
    assert recorder.requests[0].headers["Content-Type"] == "application/json"

    logs = await store.list_logs(reminder.id)
    assert [entry.status for entry in logs] == [ExecutionStatus.SUCCESS]
    assert logs[0].trigger == ExecutionTrigger.SCHEDULED
    assert logs[0].response_status == 200
    assert (await store.get(reminder.id)).execution_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("hour,minute", [(8, 59), (9, 1)])
async def test_only_exact_minute_matches(store, recorder, reminder_factory, clock_at, at, dispatcher_factory, hour, minute):
    await store.create(reminder_factory())
    tick = at(2024, 1, 8, hour, minute)

    summary = await dispatcher_factory(clock_at(tick)).run_once(tick)

    assert summary.matched == 0
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_seconds_within_the_minute_still_match(store, reminder_factory, clock_at, at, dispatcher_factory):
    await store.create(reminder_factory())
    tick = at(2024, 1, 8, 9, 0, 42)

    summary = await dispatcher_factory(clock_at(tick)).run_once(tick)

    assert summary.matched == 1


@pytest.mark.asyncio
async def test_inactive_slot_produces_no_delivery_or_log(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am):
    reminder = await store.create(
        reminder_factory(time_slots=[TimeSlot(id="slot_a", time="09:00", is_active=False)])
    )

    summary = await dispatcher_factory(clock).run_once(monday_9am)

    assert summary.matched == 0
    assert recorder.requests == []
    assert await store.list_logs(reminder.id) == []


@pytest.mark.asyncio
async def test_inactive_day_is_skipped(store, recorder, reminder_factory, clock_at, at, dispatcher_factory):
    await store.create(reminder_factory())
    saturday = at(2024, 1, 6, 9, 0)

    summary = await dispatcher_factory(clock_at(saturday)).run_once(saturday)

    assert summary.matched == 0


@pytest.mark.asyncio
async def test_failure_is_isolated_per_slot(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am, webhook_urls):
    failing = await store.create(reminder_factory(webhook_url=webhook_urls["wechat_work"] + "&fail=1"))
    working = await store.create(
        reminder_factory(
            platform="slack", webhook_url=webhook_urls["slack"], platform_config={}
        )
    )
    recorder.by_url[failing.webhook_url] = 500

    summary = await dispatcher_factory(clock).run_once(monday_9am)

    assert (summary.succeeded, summary.failed) == (1, 1)

    failed_logs = await store.list_logs(failing.id)
    assert failed_logs[0].status == ExecutionStatus.FAILED
    assert failed_logs[0].response_status == 500
    assert failed_logs[0].error_message.startswith("HTTP 500")
    assert (await store.get(failing.id)).execution_count == 0

    ok_logs = await store.list_logs(working.id)
    assert ok_logs[0].status == ExecutionStatus.SUCCESS
    assert (await store.get(working.id)).execution_count == 1


@pytest.mark.asyncio
async def test_network_error_counts_as_failure(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am):
    reminder = await store.create(reminder_factory())
    recorder.by_url[reminder.webhook_url] = httpx.ReadTimeout("slow")

    summary = await dispatcher_factory(clock).run_once(monday_9am)

    logs = await store.list_logs(reminder.id)
    assert summary.failed == 1
    assert logs[0].status == ExecutionStatus.FAILED
    assert logs[0].response_status is None
    assert "timed out" in logs[0].error_message


@pytest.mark.asyncio
async def test_two_slots_same_minute_increment_twice(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am):
    reminder = await store.create(
        reminder_factory(
            time_slots=[
                TimeSlot(id="slot_a", time="09:00", description="First"),
                TimeSlot(id="slot_b", time="09:00"),
            ]
        )
    )

    summary = await dispatcher_factory(clock, max_concurrency=2).run_once(monday_9am)

    assert summary.succeeded == 2
    assert (await store.get(reminder.id)).execution_count == 2
    assert {entry.time_slot_id for entry in await store.list_logs(reminder.id)} == {"slot_a", "slot_b"}


@pytest.mark.asyncio
async def test_unsupported_platform_is_logged_as_failure(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am):
    broken = await store.create(reminder_factory(platform="teams"))
    healthy = await store.create(reminder_factory())

    summary = await dispatcher_factory(clock).run_once(monday_9am)

    assert (summary.succeeded, summary.failed) == (1, 1)
    logs = await store.list_logs(broken.id)
    assert logs[0].status == ExecutionStatus.FAILED
    assert "Unsupported platform" in logs[0].error_message
    assert (await store.get(healthy.id)).execution_count == 1


@pytest.mark.asyncio
async def test_store_failure_on_candidate_query_propagates(store, clock, dispatcher_factory, monday_9am):
    store.find_due_candidates = AsyncMock(side_effect=StoreUnavailable("down", operation="find_due_candidates"))

    with pytest.raises(StoreUnavailable):
        await dispatcher_factory(clock).run_once(monday_9am)


@pytest.mark.asyncio
async def test_counter_failure_does_not_fail_delivery(store, recorder, reminder_factory, clock, dispatcher_factory, monday_9am):
    reminder = await store.create(reminder_factory())
    store.increment_execution = AsyncMock(side_effect=StoreUnavailable("down"))
    dispatcher = dispatcher_factory(clock)

    summary = await dispatcher.run_once(monday_9am)

    assert summary.succeeded == 1
    assert dispatcher.last_metrics.counter_errors == 1
    assert (await store.list_logs(reminder.id))[0].status == ExecutionStatus.SUCCESS


@pytest.mark.asyncio
async def test_execute_now_ignores_day_and_time(store, recorder, reminder_factory, clock_at, at, dispatcher_factory):
    reminder = await store.create(
        reminder_factory(
            time_slots=[
                TimeSlot(id="slot_a", time="09:00"),
                TimeSlot(id="slot_b", time="18:00"),
                TimeSlot(id="slot_c", time="20:00", is_active=False),
            ]
        )
    )
    sunday_night = at(2024, 1, 7, 23, 11)

    summary = await dispatcher_factory(clock_at(sunday_night)).execute_now(reminder.id)

    assert summary.trigger == ExecutionTrigger.MANUAL
    assert summary.succeeded == 2
    logs = await store.list_logs(reminder.id)
    assert {entry.time_slot_id for entry in logs} == {"slot_a", "slot_b"}
    assert all(entry.trigger == ExecutionTrigger.MANUAL for entry in logs)
    assert (await store.get(reminder.id)).execution_count == 2


@pytest.mark.asyncio
async def test_execute_now_single_slot(store, recorder, reminder_factory, clock, dispatcher_factory):
    reminder = await store.create(
        reminder_factory(
            time_slots=[TimeSlot(id="slot_a", time="09:00"), TimeSlot(id="slot_b", time="18:00")]
        )
    )

    summary = await dispatcher_factory(clock).execute_now(reminder.id, "slot_b")

    assert summary.matched == 1
    assert [r.time_slot_id for r in summary.results] == ["slot_b"]


@pytest.mark.asyncio
async def test_execute_now_errors(store, reminder_factory, clock, dispatcher_factory):
    dispatcher = dispatcher_factory(clock)
    inactive = await store.create(reminder_factory(is_active=False))
    no_slots = await store.create(
        reminder_factory(time_slots=[TimeSlot(id="slot_a", time="09:00", is_active=False)])
    )
    active = await store.create(reminder_factory())

    with pytest.raises(ReminderNotFound):
        await dispatcher.execute_now("missing")
    with pytest.raises(ReminderNotFound):
        await dispatcher.execute_now(active.id, "slot_missing")
    with pytest.raises(InvalidScheduleConfig):
        await dispatcher.execute_now(inactive.id)
    with pytest.raises(InvalidScheduleConfig):
        await dispatcher.execute_now(no_slots.id)


def test_compose_content_prefixes_description(reminder_factory):
    reminder = reminder_factory(message_content="Ship it")

    assert compose_content(reminder, TimeSlot(id="a", time="09:00", description="Release")) == "Release\nShip it"
    assert compose_content(reminder, TimeSlot(id="a", time="09:00")) == "Ship it"
