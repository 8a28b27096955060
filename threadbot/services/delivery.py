"""Scheduled prompt delivery.

Called once per scheduler tick and slot. Each due recipient goes through:
ledger check -> claim -> resolve content -> format -> send -> record. Claims
are committed before any external call so that no database lock is held
while waiting on Notion or Telegram.
"""

import enum
from dataclasses import asdict, dataclass, field
from datetime import date, datetime

import httpx
from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import get_config
from threadbot.core.datetime_utils import to_local, utc_now
from threadbot.core.logging import get_logger
from threadbot.models.recipient import Recipient, Slot
from threadbot.services.content_sources import ContentSource, get_content_source
from threadbot.services.formatting import build_prompt_message
from threadbot.services.ledger import (
    ClaimOutcome,
    claim_slot,
    get_ledger_entry,
    is_recorded,
    record_delivery,
    release_claim_failed,
)
from threadbot.services.notion import NotionError
from threadbot.services.schedule import is_due, slot_date
from threadbot.services.telegram import GatewayError, MessagingGateway

logger = get_logger(__name__)


class SkipReason(str, enum.Enum):
    """Why a recipient was not sent a prompt. None of these are errors."""

    ALREADY_SENT = "already-sent"
    IN_FLIGHT = "in-flight"
    NO_CONTENT = "no-content"
    NOT_LINKED = "not-linked"
    MISSING_CREDENTIALS = "missing-credentials"


@dataclass
class DeliveryResult:
    """Outcome of one delivery attempt for one recipient and slot."""

    account_id: str
    slot: Slot
    sent: bool
    skipped_reason: SkipReason | None = None
    error: str | None = None
    slot_date: date | None = None
    correlation_id: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["slot"] = self.slot.value
        data["skipped_reason"] = self.skipped_reason.value if self.skipped_reason else None
        data["slot_date"] = self.slot_date.isoformat() if self.slot_date else None
        return data


@dataclass
class TickSummary:
    """Aggregate result of a delivery tick."""

    slot: Slot
    checked: int = 0
    due: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[DeliveryResult] = field(default_factory=list)

    def add(self, result: DeliveryResult) -> None:
        self.results.append(result)
        if result.sent:
            self.sent += 1
        elif result.error:
            self.failed += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict:
        return {
            "slot": self.slot.value,
            "checked": self.checked,
            "due": self.due,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


async def deliver(
    db: AsyncSession,
    recipient: Recipient,
    slot: Slot,
    now_utc: datetime,
    gateway: MessagingGateway,
    content_source: ContentSource | None = None,
    slot_day: date | None = None,
) -> DeliveryResult:
    """
    Deliver the recipient's prompt for a slot at most once per local day.

    The due check is the caller's job; this function only enforces
    idempotency and performs the send.

    Args:
        db: Database session (committed by this function)
        recipient: Linked recipient to deliver to
        slot: Slot being delivered
        now_utc: Invocation time (naive UTC)
        gateway: Messaging gateway used for the send
        content_source: Override for the recipient's configured source
        slot_day: Local date to deliver for, defaults to the date of the slot
            occurrence nearest to now_utc

    Returns:
        DeliveryResult; a gateway or content-source failure is reported in
        error and leaves the ledger untouched so a later tick can retry
    """
    account_id = recipient.account_id
    result = DeliveryResult(account_id=account_id, slot=slot, sent=False)

    if not recipient.gateway_identity:
        result.skipped_reason = SkipReason.NOT_LINKED
        return result
    if not recipient.has_source_credentials():
        logger.bind(account_id=account_id, source=recipient.content_source.value).warning(
            "delivery_missing_credentials"
        )
        result.skipped_reason = SkipReason.MISSING_CREDENTIALS
        return result

    day = slot_day or slot_date(recipient.slot_time(slot), recipient.timezone, now_utc)
    result.slot_date = day

    if is_recorded(await get_ledger_entry(db, account_id), day, slot):
        result.skipped_reason = SkipReason.ALREADY_SENT
        return result

    outcome = await claim_slot(db, account_id, day, slot, now=now_utc)
    await db.commit()
    if outcome == ClaimOutcome.ALREADY_SENT:
        result.skipped_reason = SkipReason.ALREADY_SENT
        return result
    if outcome == ClaimOutcome.IN_FLIGHT:
        result.skipped_reason = SkipReason.IN_FLIGHT
        return result

    source = content_source or get_content_source(recipient, db)
    log = logger.bind(account_id=account_id, slot=slot.value, slot_date=str(day))

    try:
        content = await source.resolve(recipient, day, slot)
    except (NotionError, httpx.HTTPError) as e:
        log.bind(error=str(e)).warning("delivery_content_failed")
        await release_claim_failed(db, account_id, day, slot, f"content: {e}")
        await db.commit()
        result.error = f"content source failed: {e}"
        return result

    if content is None:
        log.info("delivery_no_content")
        await release_claim_failed(db, account_id, day, slot, "no content")
        await db.commit()
        result.skipped_reason = SkipReason.NO_CONTENT
        return result

    messages = get_config().messages
    text = build_prompt_message(
        slot_message=messages.for_slot(slot.value),
        slot_date=day,
        topic=content.label,
        body=content.body,
        reply_hint=source.reply_hint,
    )

    try:
        await gateway.send(recipient.gateway_identity, text)
    except GatewayError as e:
        log.bind(error=str(e)).warning("delivery_send_failed")
        await release_claim_failed(db, account_id, day, slot, f"gateway: {e}")
        await db.commit()
        result.error = f"gateway send failed: {e}"
        return result

    await record_delivery(
        db,
        account_id,
        day,
        slot,
        correlation_id=content.correlation_id,
        content_source=source.kind,
        now=utc_now(),
    )
    await source.mark_delivered(content.correlation_id)
    await db.commit()

    log.bind(correlation_id=content.correlation_id).info("delivery_sent")
    result.sent = True
    result.correlation_id = content.correlation_id
    return result


async def get_deliverable_recipients(db: AsyncSession) -> list[Recipient]:
    """Active recipients with a linked gateway identity."""
    result = await db.execute(
        select(Recipient)
        .where(
            Recipient.is_active == True,  # noqa: E712
            Recipient.gateway_identity.is_not(None),
        )
        .order_by(Recipient.account_id)
    )
    return list(result.scalars().all())


async def run_delivery_tick(
    db: AsyncSession,
    slot: Slot,
    gateway: MessagingGateway,
    now_utc: datetime | None = None,
) -> TickSummary:
    """
    Evaluate every deliverable recipient for a slot and deliver to those due.

    A failure for one recipient never stops the tick for the others.
    """
    now_utc = now_utc or utc_now()
    summary = TickSummary(slot=slot)
    recipients = await get_deliverable_recipients(db)
    summary.checked = len(recipients)

    for recipient in recipients:
        if inspect(recipient).expired_attributes:
            # An earlier rollback in this tick expired the session's objects
            await db.refresh(recipient)
        if not is_due(recipient.slot_time(slot), recipient.timezone, slot, now_utc):
            continue
        summary.due += 1

        try:
            result = await deliver(db, recipient, slot, now_utc, gateway)
        except Exception as e:
            await db.rollback()
            logger.bind(
                account_id=recipient.account_id,
                slot=slot.value,
                error=str(e),
            ).error("delivery_unexpected_error")
            result = DeliveryResult(
                account_id=recipient.account_id, slot=slot, sent=False, error=str(e)
            )
        summary.add(result)

    logger.bind(
        slot=slot.value,
        checked=summary.checked,
        due=summary.due,
        sent=summary.sent,
        skipped=summary.skipped,
        failed=summary.failed,
    ).info("delivery_tick_completed")
    return summary


async def send_now(
    db: AsyncSession,
    recipient: Recipient,
    slot: Slot,
    gateway: MessagingGateway,
    now_utc: datetime | None = None,
) -> DeliveryResult:
    """Deliver today's prompt for a slot immediately, ignoring the schedule window.

    The send still goes through the claim, so it counts as that slot's
    delivery for the day and the scheduled tick will skip it.
    """
    now_utc = now_utc or utc_now()
    today = to_local(now_utc, recipient.timezone).date()
    return await deliver(db, recipient, slot, now_utc, gateway, slot_day=today)
