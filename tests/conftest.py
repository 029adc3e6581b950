from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from remindhook.models.domain.reminder_domain import Reminder, TimeSlot
from remindhook.repositories.memory_store import InMemoryReminderStore
from remindhook.services.schedule_calculator import ScheduleClock
from remindhook.services.webhooks.delivery_client import WebhookDeliveryClient

TEST_TZ = "Asia/Shanghai"

WECHAT_URL = "https://qyapi.weixin.qq.com/cgi-bin/webhook/send?key=abc"
DINGTALK_URL = "https://oapi.dingtalk.com/robot/send?access_token=abc"
FEISHU_URL = "https://open.feishu.cn/open-apis/bot/v2/hook/abc"
SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"
CUSTOM_URL = "https://example.com/hooks/reminder"


def local_time(year, month, day, hour=0, minute=0, second=0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=ZoneInfo(TEST_TZ))


class FixedClock(ScheduleClock):
    """Scheduling clock frozen at a given instant."""

    def __init__(self, moment: datetime, timezone_name: str = TEST_TZ):
        super().__init__(timezone_name)
        self.moment = moment

    def now(self) -> datetime:
        return self.to_local(self.moment)


class WebhookRecorder:
    """Captures outbound webhook requests; responds with ``status`` (or a per-URL override)."""

    def __init__(self, status: int = 200):
        self.status = status
        self.by_url: dict[str, int | Exception] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.by_url.get(str(request.url), self.status)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"errcode": 0})

    def client(self) -> WebhookDeliveryClient:
        return WebhookDeliveryClient(transport=httpx.MockTransport(self.handler))


def make_reminder(**overrides) -> Reminder:
    fields = {
        "id": "",
        "owner": "user-123",
        "name": "Daily standup",
        "platform": "wechat_work",
        "webhook_url": WECHAT_URL,
        "message_content": "Standup in 5 minutes",
        "time_slots": [TimeSlot(id="slot_a", time="09:00")],
        "days": ["1", "2", "3", "4", "5"],
        "is_active": True,
        "platform_config": {"wechat": {"msgtype": "text", "mentionAll": True}},
        "created_at": local_time(2024, 1, 1),
        "updated_at": local_time(2024, 1, 1),
    }
    fields.update(overrides)
    return Reminder(**fields)


@pytest.fixture
def store():
    return InMemoryReminderStore()


@pytest.fixture
def monday_9am():
    # 2024-01-08 is a Monday
    return local_time(2024, 1, 8, 9, 0)


@pytest.fixture
def clock(monday_9am):
    return FixedClock(monday_9am)


@pytest.fixture
def recorder():
    return WebhookRecorder()


@pytest.fixture
def reminder_factory():
    return make_reminder


@pytest.fixture
def at():
    """Build an aware datetime in the test scheduling zone."""
    return local_time


@pytest.fixture
def clock_at():
    return FixedClock


@pytest.fixture
def webhook_urls():
    return {
        "wechat_work": WECHAT_URL,
        "dingtalk": DINGTALK_URL,
        "feishu": FEISHU_URL,
        "slack": SLACK_URL,
        "custom": CUSTOM_URL,
    }


@pytest.fixture
def api_client(store):
    """TestClient bound to the in-memory store fixture."""
    from fastapi.testclient import TestClient

    from remindhook.main import app
    from remindhook.repositories import get_reminder_store

    app.dependency_overrides[get_reminder_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
