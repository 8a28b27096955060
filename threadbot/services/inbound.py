"""Route inbound Telegram messages to identity linking or reply logging.

Routing is decided by the sender's link state and the shape of the text:

- unlinked sender, text with a code or a greeting -> link attempt
- unlinked sender, anything else -> help message
- linked sender, text that is exactly a live code -> link attempt (re-link)
- linked sender, anything else -> reply to the last delivered prompt
"""

import enum
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.core.logging import get_logger
from threadbot.services.formatting import escape_markdown_v2
from threadbot.services.linking import (
    LinkFailure,
    LinkResult,
    attempt_link,
    has_live_code,
    is_bare_code,
    looks_like_link_attempt,
)
from threadbot.services.replies import ReplyResult, correlate, get_recipient_by_identity
from threadbot.services.telegram import GatewayError, MessagingGateway

logger = get_logger(__name__)

LINKED_MESSAGE = (
    "✅ *Account Linked\\!*\n\n"
    "Your Telegram account has been successfully linked to Threadbot\\. "
    "You can now receive prompts and log replies\\."
)

HELP_MESSAGE = (
    "👋 *Hello\\!*\n\n"
    "To link your account, please:\n\n"
    "1\\. Go to your Threadbot dashboard\n"
    '2\\. Click "Connect Telegram"\n'
    "3\\. Send the verification code here\n\n"
    'Or just say "hello" if you have an active verification code\\.'
)

INVALID_CODE_MESSAGE = (
    "❌ That code is invalid or has expired\\. "
    "Generate a new one from your dashboard and send it here\\."
)


class InboundRoute(str, enum.Enum):
    LINK = "link"
    REPLY = "reply"
    HELP = "help"


@dataclass
class InboundResult:
    route: InboundRoute
    link: LinkResult | None = None
    reply: ReplyResult | None = None


def _rate_limited_message(retry_after_seconds: int) -> str:
    minutes = max(1, (retry_after_seconds + 59) // 60)
    return escape_markdown_v2(
        f"⏳ Too many attempts. Please try again in {minutes} minute"
        f"{'s' if minutes != 1 else ''}."
    )


async def _notify(gateway: MessagingGateway, chat_id: str, text: str) -> None:
    """Best-effort notice to the sender; a failed send is only logged."""
    try:
        await gateway.send(chat_id, text)
    except GatewayError as e:
        logger.bind(chat_id=chat_id, error=str(e)).warning("inbound_notice_failed")


async def _link(
    db: AsyncSession, gateway: MessagingGateway, chat_id: str, text: str
) -> InboundResult:
    result = await attempt_link(db, chat_id, text)
    # Persist before telling the user anything
    await db.commit()

    if result.linked:
        await _notify(gateway, chat_id, LINKED_MESSAGE)
    elif result.reason == LinkFailure.RATE_LIMITED:
        await _notify(gateway, chat_id, _rate_limited_message(result.retry_after_seconds or 0))
    else:
        await _notify(gateway, chat_id, INVALID_CODE_MESSAGE)
    return InboundResult(route=InboundRoute.LINK, link=result)


async def handle_inbound_message(
    db: AsyncSession,
    gateway: MessagingGateway,
    chat_id: str,
    text: str,
) -> InboundResult:
    """Handle one text message from a Telegram chat."""
    recipient = await get_recipient_by_identity(db, chat_id)

    if recipient is None:
        if looks_like_link_attempt(text):
            return await _link(db, gateway, chat_id, text)
        logger.bind(chat_id=chat_id).info("inbound_unlinked_help")
        await _notify(gateway, chat_id, HELP_MESSAGE)
        return InboundResult(route=InboundRoute.HELP)

    # A number that matches no live code is an answer, not a failed attempt
    if is_bare_code(text) and await has_live_code(db, text):
        return await _link(db, gateway, chat_id, text)

    reply = await correlate(db, chat_id, text)
    await db.commit()
    return InboundResult(route=InboundRoute.REPLY, reply=reply)
