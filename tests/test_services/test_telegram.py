"""Tests for the Telegram Bot API gateway."""

import json

import httpx
import pytest

from threadbot.config import TelegramConfig
from threadbot.services.telegram import GatewayError, TelegramGateway

pytestmark = pytest.mark.asyncio


class _Settings:
    telegram_bot_token = "123:abc"
    telegram_webhook_secret = "hook-secret"


def _gateway(handler, token: str = "123:abc") -> TelegramGateway:
    config = TelegramConfig({}, _Settings())
    config.bot_token = token
    return TelegramGateway(config=config, transport=httpx.MockTransport(handler))


class TestTelegramGateway:
    """Tests for TelegramGateway."""

    async def test_send_uses_markdown_v2(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})

        sent = await _gateway(handler).send("555", "Hello\\!")

        assert sent.message_id == 42
        assert seen[0].url.path == "/bot123:abc/sendMessage"
        payload = json.loads(seen[0].content)
        assert payload == {"chat_id": "555", "text": "Hello\\!", "parse_mode": "MarkdownV2"}

    async def test_api_error_raises_gateway_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400, json={"ok": False, "description": "Bad Request: can't parse entities"}
            )

        with pytest.raises(GatewayError) as exc_info:
            await _gateway(handler).send("555", "oops.")

        assert exc_info.value.status_code == 400
        assert "can't parse entities" in str(exc_info.value)

    async def test_transport_error_raises_gateway_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        with pytest.raises(GatewayError):
            await _gateway(handler).send("555", "hi")

    async def test_missing_token_fails_without_calling_api(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"ok": True, "result": True})

        with pytest.raises(GatewayError):
            await _gateway(handler, token="").send("555", "hi")
        assert calls == []

    async def test_set_webhook_sends_secret(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": True})

        ok = await _gateway(handler).set_webhook("https://example.com/webhook/telegram", "s3")

        assert ok is True
        assert seen[0]["secret_token"] == "s3"
        assert seen[0]["allowed_updates"] == ["message"]
