"""
Adapter registry: fixed lookup table over the supported platforms, URL-based
platform detection and the pre-save connectivity test.
"""

from typing import Any

from remindhook.errors import DeliveryFailure, UnsupportedPlatform
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import ConnectionTestResult, Platform
from remindhook.services.webhooks.adapters import (
    CustomAdapter,
    DingTalkAdapter,
    FeishuAdapter,
    SlackAdapter,
    WebhookAdapter,
    WeChatWorkAdapter,
)
from remindhook.services.webhooks.delivery_client import WebhookDeliveryClient

logger = get_logger(__name__)

TEST_MESSAGE = "这是一条测试消息"

_ADAPTERS: dict[Platform, WebhookAdapter] = {
    Platform.WECHAT_WORK: WeChatWorkAdapter(),
    Platform.DINGTALK: DingTalkAdapter(),
    Platform.FEISHU: FeishuAdapter(),
    Platform.SLACK: SlackAdapter(),
    Platform.CUSTOM: CustomAdapter(),
}


def _resolve_platform(platform: str | Platform) -> Platform:
    try:
        return Platform(platform)
    except ValueError:
        raise UnsupportedPlatform(str(platform)) from None


def get_adapter(platform: str | Platform) -> WebhookAdapter:
    """Return the adapter for ``platform`` or raise UnsupportedPlatform."""
    return _ADAPTERS[_resolve_platform(platform)]


def get_supported_platforms() -> list[str]:
    """Platform identifiers in stable UI order."""
    return [platform.value for platform in _ADAPTERS]


def platform_catalogue() -> list[dict]:
    return [adapter.to_dict() for adapter in _ADAPTERS.values()]


def validate_webhook_url(platform: str | Platform, url: str) -> bool:
    return get_adapter(platform).validate_url(url)


def format_message(platform: str | Platform, content: str, config: dict | None = None) -> dict:
    return get_adapter(platform).format_message(content, config)


def get_message_preview(platform: str | Platform, content: str, config: dict | None = None) -> str:
    return get_adapter(platform).get_message_preview(content, config)


def get_default_config(platform: str | Platform) -> dict[str, Any]:
    return get_adapter(platform).get_default_config()


def detect_platform_from_url(url: str) -> str | None:
    """
    Guess the platform from a webhook URL.

    Returns None when no known signature matches; the caller must then ask
    for an explicit platform (custom is never chosen automatically).
    """
    for platform, adapter in _ADAPTERS.items():
        if platform == Platform.CUSTOM:
            continue
        if adapter.validate_url(url):
            return platform.value
    return None


async def test_connection(
    platform: str | Platform,
    url: str,
    config: dict | None = None,
    *,
    client: WebhookDeliveryClient | None = None,
) -> ConnectionTestResult:
    """
    Send one canned test message and report the outcome.

    Delivery problems are reported in the result, never raised.

    Raises:
        UnsupportedPlatform: platform has no adapter
    """
    adapter = get_adapter(platform)
    owns_client = client is None
    client = client or WebhookDeliveryClient()

    try:
        payload = adapter.format_message(TEST_MESSAGE, config)
        status_code = await client.send(
            url, payload, platform=adapter.platform.value, platform_config=config
        )
        logger.info("Connection test succeeded", platform=adapter.platform.value, status_code=status_code)
        return ConnectionTestResult(success=True, message="连接测试成功", http_status=status_code)

    except DeliveryFailure as e:
        logger.warning(
            "Connection test failed",
            platform=adapter.platform.value,
            status_code=e.status_code,
            error=str(e),
        )
        return ConnectionTestResult(
            success=False, message=f"连接测试失败: {e}", http_status=e.status_code
        )

    except Exception as e:
        logger.error("Connection test error", platform=adapter.platform.value, error=str(e))
        return ConnectionTestResult(success=False, message=f"连接测试失败: {e}")

    finally:
        if owns_client:
            await client.close()
