"""
Telegram Bot API gateway.

Talks to the Bot API over plain HTTPS with httpx; no long-polling process is
needed because inbound updates arrive through the webhook endpoint.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from threadbot.config import TelegramConfig, get_config
from threadbot.core.logging import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    """Raised when the messaging gateway rejects or fails a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SentMessage:
    """Acknowledgment returned by the gateway for a sent message."""

    chat_id: str
    message_id: int | None


class MessagingGateway(Protocol):
    """Outbound side of a messaging gateway."""

    async def send(self, identity: str, text: str) -> SentMessage: ...


class TelegramGateway:
    """Minimal async client for the Telegram Bot API."""

    def __init__(
        self,
        config: TelegramConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or get_config().telegram
        self._transport = transport

    def _method_url(self, method: str) -> str:
        return f"{self.config.api_base}/bot{self.config.bot_token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        """POST a Bot API method and return its "result" field.

        Raises:
            GatewayError: on transport failure, non-2xx status, or ok=false
        """
        if not self.config.bot_token:
            raise GatewayError("Telegram bot token not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(self._method_url(method), json=payload or {})
        except httpx.HTTPError as e:
            logger.bind(method=method, error=str(e)).warning("telegram_transport_error")
            raise GatewayError(f"Telegram {method} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400 or not data.get("ok"):
            description = data.get("description") or resp.text[:200]
            logger.bind(
                method=method,
                status=resp.status_code,
                description=description,
            ).warning("telegram_api_error")
            raise GatewayError(
                f"Telegram {method} failed: {description}", status_code=resp.status_code
            )

        return data.get("result")

    async def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: str | None = "MarkdownV2",
    ) -> SentMessage:
        """Send a text message to a chat."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        result = await self._call("sendMessage", payload)
        message_id = result.get("message_id") if isinstance(result, dict) else None
        logger.bind(chat_id=chat_id, message_id=message_id).debug("telegram_message_sent")
        return SentMessage(chat_id=chat_id, message_id=message_id)

    async def send(self, identity: str, text: str) -> SentMessage:
        return await self.send_message(identity, text)

    async def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        """Register the webhook URL, optionally with a secret echoed in a header."""
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(await self._call("setWebhook", payload))

    async def get_webhook_info(self) -> dict[str, Any]:
        result = await self._call("getWebhookInfo")
        return result or {}

    async def delete_webhook(self) -> bool:
        return bool(await self._call("deleteWebhook"))


def get_gateway() -> MessagingGateway:
    """Dependency that provides the messaging gateway."""
    return TelegramGateway()
