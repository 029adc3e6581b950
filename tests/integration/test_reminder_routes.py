"""
HTTP-level tests for the reminder endpoints against the in-memory store.
"""

from unittest.mock import AsyncMock, patch

import pytest

from remindhook.models.domain.reminder_domain import ConnectionTestResult, ExecutionStatus
from remindhook.services.execution_log_service import ExecutionLogService

pytestmark = pytest.mark.integration

OWNER = {"owner_id": "user-123"}


def _payload(webhook_urls, **overrides) -> dict:
    body = {
        "name": "Standup",
        "platform": "wechat_work",
        "webhook_url": webhook_urls["wechat_work"],
        "message_content": "Standup in 5 minutes",
        "time_slots": [{"time": "09:00", "description": "Morning"}, {"time": "17:30", "is_active": False}],
        "days": ["1", "2", "3", "4", "5"],
    }
    body.update(overrides)
    return body


def _create(api_client, webhook_urls, **overrides) -> dict:
    response = api_client.post("/reminders", params=OWNER, json=_payload(webhook_urls, **overrides))
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_get_reminder(api_client, webhook_urls):
    created = _create(api_client, webhook_urls)

    assert created["owner_id"] == "user-123"
    assert created["execution_count"] == 0
    assert created["platform_config"] == {"wechat": {"msgtype": "text", "mentionAll": True}}
    assert created["time_slots"][0]["id"].startswith("slot_")
    assert created["time_slots"][0]["next_run"] is not None
    assert created["time_slots"][1]["next_run"] is None

    fetched = api_client.get(f"/reminders/{created['id']}", params=OWNER)
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Standup"


def test_list_reminders_scoped_to_owner(api_client, webhook_urls):
    _create(api_client, webhook_urls)
    _create(api_client, webhook_urls, name="Second")

    mine = api_client.get("/reminders", params=OWNER).json()
    theirs = api_client.get("/reminders", params={"owner_id": "someone-else"}).json()

    assert mine["total"] == 2
    assert theirs == {"reminders": [], "total": 0}


def test_owner_id_is_required(api_client):
    assert api_client.get("/reminders").status_code == 422


@pytest.mark.parametrize(
    "overrides",
    [
        {"time_slots": [{"time": "25:00"}]},
        {"time_slots": [{"time": "09:00", "is_active": False}]},
        {"days": ["9"]},
        {"webhook_url": "not a url"},
    ],
)
def test_invalid_reminder_is_422(api_client, webhook_urls, overrides):
    response = api_client.post("/reminders", params=OWNER, json=_payload(webhook_urls, **overrides))

    assert response.status_code == 422


def test_unsupported_platform_is_400(api_client, webhook_urls):
    response = api_client.post("/reminders", params=OWNER, json=_payload(webhook_urls, platform="teams"))

    assert response.status_code == 400
    assert "teams" in response.json()["detail"]


def test_other_owner_gets_404(api_client, webhook_urls):
    created = _create(api_client, webhook_urls)

    response = api_client.get(f"/reminders/{created['id']}", params={"owner_id": "intruder"})

    assert response.status_code == 404


def test_update_reminder(api_client, webhook_urls):
    created = _create(api_client, webhook_urls)
    slot_id = created["time_slots"][0]["id"]

    response = api_client.patch(
        f"/reminders/{created['id']}",
        params=OWNER,
        json={"name": "Renamed", "time_slots": [{"id": slot_id, "time": "10:15"}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Renamed"
    assert [slot["id"] for slot in body["time_slots"]] == [slot_id]
    assert body["time_slots"][0]["time"] == "10:15"


def test_update_missing_reminder_is_404(api_client):
    response = api_client.patch("/reminders/missing", params=OWNER, json={"name": "x"})

    assert response.status_code == 404


def test_toggle_endpoints(api_client, webhook_urls):
    created = _create(api_client, webhook_urls)
    reminder_id = created["id"]
    slot_id = created["time_slots"][0]["id"]

    paused = api_client.post(f"/reminders/{reminder_id}/toggle", params=OWNER, json={"is_active": False})
    assert paused.status_code == 200
    assert paused.json()["is_active"] is False

    slot_off = api_client.post(
        f"/reminders/{reminder_id}/slots/{slot_id}/toggle", params=OWNER, json={"is_active": False}
    )
    assert slot_off.status_code == 200
    assert slot_off.json()["time_slots"][0]["next_run"] is None

    missing = api_client.post(
        f"/reminders/{reminder_id}/slots/slot_missing/toggle", params=OWNER, json={"is_active": True}
    )
    assert missing.status_code == 404


def test_delete_and_batch_delete(api_client, webhook_urls):
    first = _create(api_client, webhook_urls)
    second = _create(api_client, webhook_urls)
    foreign = api_client.post(
        "/reminders", params={"owner_id": "other"}, json=_payload(webhook_urls)
    ).json()

    assert api_client.delete(f"/reminders/{first['id']}", params=OWNER).status_code == 204
    assert api_client.delete(f"/reminders/{first['id']}", params=OWNER).status_code == 404

    response = api_client.post(
        "/reminders/batch-delete",
        params=OWNER,
        json={"reminder_ids": [second["id"], foreign["id"]]},
    )
    assert response.json() == {"deleted": 1}
    assert api_client.get(f"/reminders/{foreign['id']}", params={"owner_id": "other"}).status_code == 200


def test_stats_endpoint(api_client, webhook_urls):
    _create(api_client, webhook_urls)
    paused = _create(api_client, webhook_urls)
    api_client.post(f"/reminders/{paused['id']}/toggle", params=OWNER, json={"is_active": False})

    stats = api_client.get("/reminders/stats", params=OWNER).json()

    assert (stats["total"], stats["active"], stats["inactive"]) == (2, 1, 1)
    assert stats["total_executions"] == 0
    assert stats["next_execution"] is not None


def test_export_and_import(api_client, webhook_urls):
    _create(api_client, webhook_urls)

    exported = api_client.get("/reminders/export", params=OWNER).json()
    assert len(exported["reminders"]) == 1
    assert "id" not in exported["reminders"][0]

    response = api_client.post(
        "/reminders/import",
        params={"owner_id": "user-456"},
        json={"reminders": exported["reminders"] + [{"name": "incomplete"}]},
    )

    body = response.json()
    assert response.status_code == 200
    assert len(body["created_ids"]) == 1
    assert body["invalid"][0]["index"] == 1
    assert api_client.get("/reminders", params={"owner_id": "user-456"}).json()["total"] == 1


@pytest.mark.asyncio
async def test_execution_history(api_client, store, webhook_urls, at):
    created = _create(api_client, webhook_urls)
    log = ExecutionLogService(store)
    await log.record(created["id"], "slot_a", ExecutionStatus.SUCCESS, at(2024, 1, 8, 9, 0))
    await log.record(
        created["id"], "slot_a", ExecutionStatus.FAILED, at(2024, 1, 9, 9, 0), error_message="HTTP 500"
    )

    response = api_client.get(f"/reminders/{created['id']}/executions", params={**OWNER, "limit": 1})

    entries = response.json()
    assert response.status_code == 200
    assert len(entries) == 1
    assert entries[0]["status"] == "failed"
    assert entries[0]["trigger"] == "scheduled"


def test_platform_helpers(api_client, webhook_urls):
    platforms = api_client.get("/reminders/platforms").json()
    assert [p["value"] for p in platforms] == ["wechat_work", "dingtalk", "feishu", "slack", "custom"]

    detected = api_client.post("/reminders/platforms/detect", json={"webhook_url": webhook_urls["dingtalk"]})
    assert detected.json() == {"platform": "dingtalk"}

    unknown = api_client.post("/reminders/platforms/detect", json={"webhook_url": webhook_urls["custom"]})
    assert unknown.json() == {"platform": None}

    preview = api_client.post(
        "/reminders/platforms/preview",
        json={"platform": "slack", "content": "hello"},
    )
    assert preview.status_code == 200
    assert preview.json()["payload"]["text"] == "hello"


def test_preview_with_broken_template_is_422(api_client):
    response = api_client.post(
        "/reminders/platforms/preview",
        json={"platform": "custom", "content": "hi", "config": {"bodyTemplate": '{"x": "{{content}"'}},
    )

    assert response.status_code == 422


def test_preview_with_non_text_template_is_422(api_client):
    response = api_client.post(
        "/reminders/platforms/preview",
        json={"platform": "custom", "content": "hi", "config": {"bodyTemplate": 5}},
    )

    assert response.status_code == 422
    assert "string" in response.json()["detail"]


def test_connection_endpoint(api_client, webhook_urls):
    result = ConnectionTestResult(success=False, message="连接测试失败: HTTP 404", http_status=404)

    with patch(
        "remindhook.services.webhooks.registry.test_connection", AsyncMock(return_value=result)
    ) as mocked:
        response = api_client.post(
            "/reminders/test-connection",
            json={"platform": "slack", "webhook_url": webhook_urls["slack"]},
        )

    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "连接测试失败: HTTP 404", "http_status": 404}
    mocked.assert_awaited_once_with("slack", webhook_urls["slack"], None)
