"""Inbound Telegram webhook."""

from fastapi import APIRouter, Header, Request
from pydantic import ValidationError

from threadbot.core.logging import get_logger
from threadbot.core.security import secrets_match
from threadbot.dependencies import AppSettings, DBSession, Gateway
from threadbot.schemas.telegram import TelegramUpdate
from threadbot.services.inbound import handle_inbound_message

logger = get_logger(__name__)
router = APIRouter()

OK = {"ok": True}


@router.post("/webhook/telegram")
async def telegram_webhook(
    request: Request,
    db: DBSession,
    settings: AppSettings,
    gateway: Gateway,
    x_telegram_bot_api_secret_token: str | None = Header(default=None),
) -> dict[str, bool]:
    """
    Receive a Telegram update.

    Always answers 200 {"ok": true}: Telegram retries anything else, and the
    answer must not reveal whether the secret or the message was valid.
    """
    if not secrets_match(x_telegram_bot_api_secret_token, settings.telegram_webhook_secret):
        logger.warning("telegram_webhook_unauthorized")
        return OK

    try:
        update = TelegramUpdate.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.bind(error=str(e)).warning("telegram_webhook_invalid_payload")
        return OK

    message = update.message
    if message is None or not message.text:
        logger.bind(update_id=update.update_id).debug("telegram_webhook_ignored")
        return OK

    chat_id = str(message.chat.id)
    try:
        result = await handle_inbound_message(db, gateway, chat_id, message.text)
        logger.bind(update_id=update.update_id, route=result.route.value).info(
            "telegram_webhook_handled"
        )
    except Exception as e:
        await db.rollback()
        logger.bind(update_id=update.update_id, error=str(e)).error("telegram_webhook_failed")

    return OK
