"""Delivery ledger and slot claims.

The ledger keeps one row per account describing the last successful
delivery. Claims keep one row per (account, local date, slot) and are the
only way a tick gets the right to transmit: the insert is guarded by a
unique constraint and re-acquisition is a compare-and-swap UPDATE, so two
overlapping ticks can never both hold the same claim.
"""

import enum
from datetime import date, datetime, timedelta

from sqlalchemy import and_, case, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import get_config
from threadbot.core.datetime_utils import get_cutoff, utc_now
from threadbot.core.logging import get_logger
from threadbot.models.delivery import ClaimStatus, DeliveryClaim, DeliveryLedgerEntry
from threadbot.models.recipient import ContentSourceKind, Slot

logger = get_logger(__name__)

REPLY_BUFFER_SEPARATOR = "\n\n---\n\n"


class ClaimOutcome(str, enum.Enum):
    ACQUIRED = "acquired"
    ALREADY_SENT = "already-sent"
    IN_FLIGHT = "in-flight"


async def get_ledger_entry(db: AsyncSession, account_id: str) -> DeliveryLedgerEntry | None:
    # Rows are rewritten by bulk UPDATEs; refresh any copy already in the session
    result = await db.execute(
        select(DeliveryLedgerEntry)
        .where(DeliveryLedgerEntry.account_id == account_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def is_recorded(entry: DeliveryLedgerEntry | None, slot_date: date, slot: Slot) -> bool:
    """True if the ledger already shows this slot delivered on slot_date."""
    return entry is not None and entry.last_local_date == slot_date and entry.last_slot == slot


def _claim_key(account_id: str, slot_date: date, slot: Slot) -> list:
    return [
        DeliveryClaim.account_id == account_id,
        DeliveryClaim.slot_date == slot_date,
        DeliveryClaim.slot == slot,
    ]


async def claim_slot(
    db: AsyncSession,
    account_id: str,
    slot_date: date,
    slot: Slot,
    now: datetime | None = None,
    lease_seconds: int | None = None,
) -> ClaimOutcome:
    """
    Try to take the delivery claim for one (account, date, slot).

    A fresh key is taken by INSERT. An existing claim is taken over only when
    it previously failed or when it has been pending longer than the lease
    (its holder died mid-flight).

    Args:
        db: Database session
        account_id: Account to deliver to
        slot_date: Recipient-local date of the slot
        slot: Slot being delivered
        now: Claim time (naive UTC), defaults to now
        lease_seconds: Age after which a pending claim may be retaken

    Returns:
        ACQUIRED if this caller may transmit, otherwise why not
    """
    now = now or utc_now()
    if lease_seconds is None:
        lease_seconds = get_config().schedule.claim_lease_seconds

    try:
        async with db.begin_nested():
            db.add(
                DeliveryClaim(
                    account_id=account_id,
                    slot_date=slot_date,
                    slot=slot,
                    status=ClaimStatus.PENDING,
                    claimed_at=now,
                )
            )
        return ClaimOutcome.ACQUIRED
    except IntegrityError:
        pass

    stale_before = now - timedelta(seconds=lease_seconds)
    result = await db.execute(
        update(DeliveryClaim)
        .where(
            *_claim_key(account_id, slot_date, slot),
            or_(
                DeliveryClaim.status == ClaimStatus.FAILED,
                and_(
                    DeliveryClaim.status == ClaimStatus.PENDING,
                    DeliveryClaim.claimed_at < stale_before,
                ),
            ),
        )
        .values(status=ClaimStatus.PENDING, claimed_at=now, error=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        logger.bind(account_id=account_id, slot=slot.value, slot_date=str(slot_date)).info(
            "delivery_claim_reacquired"
        )
        return ClaimOutcome.ACQUIRED

    status = await db.scalar(
        select(DeliveryClaim.status).where(*_claim_key(account_id, slot_date, slot))
    )
    if status == ClaimStatus.SENT:
        return ClaimOutcome.ALREADY_SENT
    return ClaimOutcome.IN_FLIGHT


async def release_claim_failed(
    db: AsyncSession,
    account_id: str,
    slot_date: date,
    slot: Slot,
    error: str,
) -> None:
    """Mark a claim failed so a later tick in the window may retry."""
    await db.execute(
        update(DeliveryClaim)
        .where(*_claim_key(account_id, slot_date, slot))
        .values(status=ClaimStatus.FAILED, error=error[:1000])
        .execution_options(synchronize_session=False)
    )


async def record_delivery(
    db: AsyncSession,
    account_id: str,
    slot_date: date,
    slot: Slot,
    correlation_id: str,
    content_source: ContentSourceKind,
    now: datetime | None = None,
) -> None:
    """
    Mark the claim sent and upsert the ledger entry.

    The new correlation id replaces the previous one and the reply buffer
    starts empty, so replies from here on bind to the new item.
    """
    now = now or utc_now()

    await db.execute(
        update(DeliveryClaim)
        .where(*_claim_key(account_id, slot_date, slot))
        .values(status=ClaimStatus.SENT, sent_at=now, error=None)
        .execution_options(synchronize_session=False)
    )

    values = {
        "last_slot": slot,
        "last_local_date": slot_date,
        "last_delivered_at": now,
        "correlation_id": correlation_id,
        "content_source": content_source,
        "reply_buffer": None,
    }

    if await _update_ledger(db, account_id, values):
        return

    try:
        async with db.begin_nested():
            db.add(DeliveryLedgerEntry(account_id=account_id, **values))
    except IntegrityError:
        # Inserted concurrently between our UPDATE and INSERT
        await _update_ledger(db, account_id, values)


async def _update_ledger(db: AsyncSession, account_id: str, values: dict) -> bool:
    result = await db.execute(
        update(DeliveryLedgerEntry)
        .where(DeliveryLedgerEntry.account_id == account_id)
        .values(**values, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def append_to_reply_buffer(db: AsyncSession, account_id: str, text: str) -> bool:
    """Append a reply to the ledger's buffer for the currently referenced item."""
    new_buffer = case(
        (DeliveryLedgerEntry.reply_buffer.is_(None), text),
        else_=DeliveryLedgerEntry.reply_buffer + REPLY_BUFFER_SEPARATOR + text,
    )
    result = await db.execute(
        update(DeliveryLedgerEntry)
        .where(
            DeliveryLedgerEntry.account_id == account_id,
            DeliveryLedgerEntry.correlation_id.is_not(None),
        )
        .values(reply_buffer=new_buffer)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def delete_stale_claims(db: AsyncSession, older_than_days: int = 7) -> int:
    """Delete claims for slot dates older than the cutoff."""
    cutoff = get_cutoff(days=older_than_days).date()
    result = await db.execute(delete(DeliveryClaim).where(DeliveryClaim.slot_date < cutoff))
    return result.rowcount or 0
