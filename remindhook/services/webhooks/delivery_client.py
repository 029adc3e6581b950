"""
Low-level webhook delivery client.
Sends adapter-formatted JSON payloads with a bounded timeout and turns every
non-2xx response or transport error into a DeliveryFailure.
"""

import json
import time
from typing import Any

import httpx

from remindhook.config import settings
from remindhook.errors import DeliveryFailure
from remindhook.infrastructure.observability.logging import get_logger
from remindhook.models.domain.reminder_domain import Platform

logger = get_logger(__name__)

ALLOWED_CUSTOM_METHODS = {"GET", "POST", "PUT"}


def encode_payload(payload: Any) -> bytes:
    """Serialize a payload deterministically (same input, same bytes)."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class WebhookDeliveryClient:
    """
    Async HTTP client for webhook delivery.

    One instance is shared by a dispatcher tick; ``close()`` releases the
    connection pool.
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout_seconds = timeout_seconds or settings.WEBHOOK_TIMEOUT_SECONDS
        self.user_agent = user_agent or settings.USER_AGENT
        self._client = self._create_client(transport)

    def _create_client(self, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.timeout_seconds)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits, transport=transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "WebhookDeliveryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _request_options(
        self, platform: str, platform_config: dict[str, Any] | None
    ) -> tuple[str, dict[str, str]]:
        """Resolve HTTP method and headers; only the custom platform may override them."""
        headers = {"Content-Type": "application/json", "User-Agent": self.user_agent}
        method = "POST"

        if platform == Platform.CUSTOM.value and platform_config:
            custom_headers = platform_config.get("headers") or {}
            headers.update({str(k): str(v) for k, v in custom_headers.items()})
            configured = str(platform_config.get("method") or "POST").upper()
            if configured in ALLOWED_CUSTOM_METHODS:
                method = configured

        return method, headers

    async def send(
        self,
        url: str,
        payload: Any,
        *,
        platform: str,
        platform_config: dict[str, Any] | None = None,
    ) -> int:
        """
        Deliver one payload.

        Returns:
            int: HTTP status code of the 2xx response

        Raises:
            DeliveryFailure: non-2xx response, timeout or network error
        """
        method, headers = self._request_options(platform, platform_config)
        content = None if method == "GET" else encode_payload(payload)

        start = time.time()
        try:
            response = await self._client.request(method, url, content=content, headers=headers)
        except httpx.TimeoutException as e:
            raise DeliveryFailure(
                f"Request timed out after {self.timeout_seconds}s: {type(e).__name__}"
            ) from e
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"{type(e).__name__}: {e}") from e

        duration_ms = round((time.time() - start) * 1000, 2)

        if not response.is_success:
            logger.debug(
                "Webhook responded with error",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
                duration_ms=duration_ms,
            )
            raise DeliveryFailure(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        logger.debug("Webhook accepted", status_code=response.status_code, duration_ms=duration_ms)
        return response.status_code
