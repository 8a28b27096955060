"""Bind inbound replies to the prompt most recently delivered to the sender."""

import enum
from dataclasses import dataclass

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.core.logging import get_logger
from threadbot.models.recipient import Recipient
from threadbot.services.content_sources import ContentSource, get_content_source
from threadbot.services.ledger import append_to_reply_buffer, get_ledger_entry
from threadbot.services.notion import NotionError

logger = get_logger(__name__)


class ReplyOutcome(str, enum.Enum):
    APPLIED = "applied"
    UNRECOGNIZED_IDENTITY = "unrecognized-identity"
    NO_PENDING_DELIVERY = "no-pending-delivery"
    EMPTY_REPLY = "empty-reply"
    ITEM_MISSING = "item-missing"
    SOURCE_FAILED = "source-failed"


@dataclass
class ReplyResult:
    outcome: ReplyOutcome
    account_id: str | None = None
    correlation_id: str | None = None
    error: str | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == ReplyOutcome.APPLIED


async def get_recipient_by_identity(db: AsyncSession, gateway_identity: str) -> Recipient | None:
    result = await db.execute(
        select(Recipient).where(Recipient.gateway_identity == gateway_identity)
    )
    return result.scalar_one_or_none()


async def correlate(
    db: AsyncSession,
    gateway_identity: str,
    reply_text: str,
    content_source: ContentSource | None = None,
) -> ReplyResult:
    """
    Append a reply to the content item of the sender's last delivery.

    There is no reply-to information from the gateway, so the reply binds to
    whatever the ledger references at append time. A reply racing a newer
    delivery lands on the newer item. Duplicate callbacks append twice.

    Args:
        db: Database session (not committed here)
        gateway_identity: Sender identity reported by the gateway
        reply_text: Raw reply text
        content_source: Override for the source of the delivered item

    Returns:
        ReplyResult; nothing here raises for the webhook caller
    """
    text = reply_text.strip()
    if not text:
        return ReplyResult(outcome=ReplyOutcome.EMPTY_REPLY)

    recipient = await get_recipient_by_identity(db, gateway_identity)
    if recipient is None:
        logger.bind(gateway_identity=gateway_identity).info("reply_unrecognized_identity")
        return ReplyResult(outcome=ReplyOutcome.UNRECOGNIZED_IDENTITY)

    account_id = recipient.account_id
    entry = await get_ledger_entry(db, account_id)
    if entry is None or not entry.correlation_id:
        logger.bind(account_id=account_id).info("reply_no_pending_delivery")
        return ReplyResult(outcome=ReplyOutcome.NO_PENDING_DELIVERY, account_id=account_id)

    correlation_id = entry.correlation_id
    source = content_source or get_content_source(recipient, db, kind=entry.content_source)

    try:
        applied = await source.append_reply(recipient, correlation_id, text)
    except (NotionError, httpx.HTTPError) as e:
        logger.bind(account_id=account_id, correlation_id=correlation_id, error=str(e)).error(
            "reply_append_failed"
        )
        return ReplyResult(
            outcome=ReplyOutcome.SOURCE_FAILED,
            account_id=account_id,
            correlation_id=correlation_id,
            error=str(e),
        )

    if not applied:
        logger.bind(account_id=account_id, correlation_id=correlation_id).warning(
            "reply_item_missing"
        )
        return ReplyResult(
            outcome=ReplyOutcome.ITEM_MISSING,
            account_id=account_id,
            correlation_id=correlation_id,
        )

    await append_to_reply_buffer(db, account_id, text)
    logger.bind(account_id=account_id, correlation_id=correlation_id).info("reply_logged")
    return ReplyResult(
        outcome=ReplyOutcome.APPLIED,
        account_id=account_id,
        correlation_id=correlation_id,
    )
