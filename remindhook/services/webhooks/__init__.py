"""
Outbound webhook support: platform adapters, the adapter registry and the
HTTP delivery client.
"""

from .adapters import WebhookAdapter
from .delivery_client import WebhookDeliveryClient
from .registry import detect_platform_from_url, get_adapter, get_supported_platforms

__all__ = [
    "WebhookAdapter",
    "WebhookDeliveryClient",
    "detect_platform_from_url",
    "get_adapter",
    "get_supported_platforms",
]
