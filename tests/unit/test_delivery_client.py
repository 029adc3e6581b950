import json

import httpx
import pytest

from remindhook.errors import DeliveryFailure
from remindhook.services.webhooks.delivery_client import WebhookDeliveryClient, encode_payload


def test_encode_payload_is_deterministic():
    payload = {"msgtype": "text", "text": {"content": "站会"}}

    assert encode_payload(payload) == encode_payload(dict(payload))
    assert json.loads(encode_payload(payload)) == payload
    assert "站会".encode() in encode_payload(payload)


@pytest.mark.asyncio
async def test_send_posts_json_with_user_agent(recorder, webhook_urls):
    client = WebhookDeliveryClient(user_agent="remindhook-test/1.0", transport=httpx.MockTransport(recorder.handler))

    status_code = await client.send(webhook_urls["slack"], {"text": "hi"}, platform="slack")
    await client.close()

    request = recorder.requests[0]
    assert status_code == 200
    assert request.method == "POST"
    assert request.headers["User-Agent"] == "remindhook-test/1.0"
    assert json.loads(request.content) == {"text": "hi"}


@pytest.mark.asyncio
async def test_non_2xx_raises_with_status(recorder, webhook_urls):
    recorder.status = 502
    client = recorder.client()

    with pytest.raises(DeliveryFailure) as exc_info:
        await client.send(webhook_urls["feishu"], {"msg_type": "text"}, platform="feishu")
    await client.close()

    assert exc_info.value.status_code == 502
    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_timeout_raises_without_status(recorder, webhook_urls):
    recorder.by_url[webhook_urls["dingtalk"]] = httpx.ConnectTimeout("too slow")
    client = recorder.client()

    with pytest.raises(DeliveryFailure) as exc_info:
        await client.send(webhook_urls["dingtalk"], {}, platform="dingtalk")
    await client.close()

    assert exc_info.value.status_code is None
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_custom_get_sends_no_body(recorder, webhook_urls):
    client = recorder.client()

    await client.send(
        webhook_urls["custom"],
        {"text": "ignored"},
        platform="custom",
        platform_config={"method": "get", "headers": {"X-Key": "k"}},
    )
    await client.close()

    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.content == b""
    assert request.headers["X-Key"] == "k"


@pytest.mark.asyncio
async def test_method_override_only_for_custom(recorder, webhook_urls):
    client = recorder.client()

    await client.send(
        webhook_urls["slack"],
        {"text": "hi"},
        platform="slack",
        platform_config={"method": "PUT", "headers": {"X-Key": "k"}},
    )
    await client.close()

    request = recorder.requests[0]
    assert request.method == "POST"
    assert "X-Key" not in request.headers
