"""
Platform adapters for outbound webhook messages.

Each adapter knows how one chat platform expects its webhook payload,
how to recognise that platform's webhook URLs, which formatting options it
supports, and how the message will read once delivered. Adapters are pure:
no network I/O and no hidden state, so the same input always produces the
same payload.
"""

import json
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

from remindhook.errors import InvalidScheduleConfig
from remindhook.models.domain.reminder_domain import PLATFORM_CONFIG_SECTIONS, Platform

MENTION_ALL_TEXT = "@所有人"
CONTENT_TOKEN = "{{content}}"
DEFAULT_CUSTOM_TEMPLATE = '{"message": "{{content}}"}'


def config_section_for(platform: str) -> str | None:
    """Key under platformConfig holding options for ``platform``."""
    return PLATFORM_CONFIG_SECTIONS.get(str(platform))


class WebhookAdapter(ABC):
    """Formatting/validation strategy for one chat platform."""

    platform: Platform
    label: str
    icon: str
    description: str

    @property
    def config_section(self) -> str | None:
        return config_section_for(self.platform.value)

    @abstractmethod
    def format_message(self, content: str, config: dict[str, Any] | None = None) -> dict:
        """Build the platform-native JSON payload."""

    @abstractmethod
    def validate_url(self, url: str) -> bool:
        """Check the URL against the platform's webhook signature."""

    @abstractmethod
    def get_default_config(self) -> dict[str, Any]:
        """Options used to seed platformConfig."""

    @abstractmethod
    def get_message_preview(self, content: str, config: dict[str, Any] | None = None) -> str:
        """Human-readable rendering of what will be delivered."""

    def to_dict(self) -> dict:
        return {
            "value": self.platform.value,
            "label": self.label,
            "icon": self.icon,
            "description": self.description,
            "config_section": self.config_section,
            "default_config": self.get_default_config(),
        }


class WeChatWorkAdapter(WebhookAdapter):
    platform = Platform.WECHAT_WORK
    label = "企业微信"
    icon = "💬"
    description = "企业微信群机器人"

    def _mention_all(self, config: dict | None) -> bool:
        return (config or {}).get("mentionAll") is not False

    def _msgtype(self, config: dict | None) -> str:
        return (config or {}).get("msgtype") or "text"

    def _render_content(self, content: str, config: dict | None) -> str:
        if not self._mention_all(config):
            return content
        if self._msgtype(config) == "markdown":
            return f"<@all>\n{content}"
        return f"{MENTION_ALL_TEXT} \n{content}"

    def format_message(self, content: str, config: dict[str, Any] | None = None) -> dict:
        rendered = self._render_content(content, config)

        if self._msgtype(config) == "markdown":
            return {"msgtype": "markdown", "markdown": {"content": rendered}}

        return {
            "msgtype": "text",
            "text": {
                "content": rendered,
                "mentioned_list": ["@all"] if self._mention_all(config) else [],
            },
        }

    def validate_url(self, url: str) -> bool:
        return "qyapi.weixin.qq.com" in url and "webhook/send" in url

    def get_default_config(self) -> dict[str, Any]:
        return {"msgtype": "text", "mentionAll": True}

    def get_message_preview(self, content: str, config: dict[str, Any] | None = None) -> str:
        return self._render_content(content, config)


class DingTalkAdapter(WebhookAdapter):
    platform = Platform.DINGTALK
    label = "钉钉"
    icon = "📱"
    description = "钉钉群机器人"

    MARKDOWN_TITLE = "提醒消息"

    def _at_all(self, config: dict | None) -> bool:
        return (config or {}).get("isAtAll") is not False

    def format_message(self, content: str, config: dict[str, Any] | None = None) -> dict:
        msgtype = (config or {}).get("msgtype") or "text"
        at = {"isAtAll": self._at_all(config)}

        if msgtype == "markdown":
            return {
                "msgtype": "markdown",
                "markdown": {"title": self.MARKDOWN_TITLE, "text": content},
                "at": at,
            }

        return {"msgtype": "text", "text": {"content": content}, "at": at}

    def validate_url(self, url: str) -> bool:
        return "oapi.dingtalk.com" in url and "robot/send" in url

    def get_default_config(self) -> dict[str, Any]:
        return {"msgtype": "text", "isAtAll": True}

    def get_message_preview(self, content: str, config: dict[str, Any] | None = None) -> str:
        return f"{MENTION_ALL_TEXT}\n{content}" if self._at_all(config) else content


class FeishuAdapter(WebhookAdapter):
    platform = Platform.FEISHU
    label = "飞书"
    icon = "🚀"
    description = "飞书群机器人"

    def format_message(self, content: str, config: dict[str, Any] | None = None) -> dict:
        msg_type = (config or {}).get("msg_type") or "text"

        if msg_type == "rich_text":
            return {
                "msg_type": "rich_text",
                "content": {"rich_text": [{"tag": "text", "text": content, "un_escape": True}]},
            }

        return {"msg_type": "text", "content": {"text": content}}

    def validate_url(self, url: str) -> bool:
        return "open.feishu.cn" in url and "hook" in url

    def get_default_config(self) -> dict[str, Any]:
        return {"msg_type": "text"}

    def get_message_preview(self, content: str, config: dict[str, Any] | None = None) -> str:
        # No mention-all syntax on Feishu
        return content


class SlackAdapter(WebhookAdapter):
    platform = Platform.SLACK
    label = "Slack"
    icon = "💼"
    description = "Slack Webhook"

    BOT_USERNAME = "Reminder Bot"
    BOT_ICON = ":bell:"

    def format_message(self, content: str, config: dict[str, Any] | None = None) -> dict:
        return {"text": content, "username": self.BOT_USERNAME, "icon_emoji": self.BOT_ICON}

    def validate_url(self, url: str) -> bool:
        return "hooks.slack.com" in url

    def get_default_config(self) -> dict[str, Any]:
        return {}

    def get_message_preview(self, content: str, config: dict[str, Any] | None = None) -> str:
        return content


class CustomAdapter(WebhookAdapter):
    platform = Platform.CUSTOM
    label = "自定义"
    icon = "⚙️"
    description = "自定义Webhook接口"

    def _template(self, config: dict | None) -> str:
        template = (config or {}).get("bodyTemplate") or DEFAULT_CUSTOM_TEMPLATE
        if not isinstance(template, str):
            raise InvalidScheduleConfig(
                f"Custom body template must be a string, got {type(template).__name__}",
                field="platformConfig.custom.bodyTemplate",
                operation="format_message",
            )
        return template

    def format_message(self, content: str, config: dict[str, Any] | None = None) -> dict:
        template = self._template(config)
        if CONTENT_TOKEN not in template:
            raise InvalidScheduleConfig(
                f"Custom body template must contain {CONTENT_TOKEN}",
                field="platformConfig.custom.bodyTemplate",
                operation="format_message",
            )

        # Insert the content as a JSON string body so quotes/newlines survive
        escaped = json.dumps(content, ensure_ascii=False)[1:-1]
        rendered = template.replace(CONTENT_TOKEN, escaped)
        try:
            return json.loads(rendered)
        except json.JSONDecodeError as e:
            raise InvalidScheduleConfig(
                f"Custom body template is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
                field="platformConfig.custom.bodyTemplate",
                operation="format_message",
            ) from e

    def validate_url(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)

    def get_default_config(self) -> dict[str, Any]:
        return {
            "method": "POST",
            "headers": {"Content-Type": "application/json"},
            "bodyTemplate": DEFAULT_CUSTOM_TEMPLATE,
        }

    def get_message_preview(self, content: str, config: dict[str, Any] | None = None) -> str:
        return self._template(config).replace(CONTENT_TOKEN, content)
