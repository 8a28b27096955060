"""Delivery ledger and per-slot delivery claims."""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, Enum, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from threadbot.models.base import Base, TimestampMixin
from threadbot.models.recipient import ContentSourceKind, Slot


class ClaimStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class DeliveryLedgerEntry(Base, TimestampMixin):
    """Most recent successful delivery per account.

    Written only after the gateway confirms a send. The correlation_id points
    at the content item the delivered prompt came from; inbound replies are
    logged against it until the next delivery replaces it.
    """

    __tablename__ = "delivery_ledger"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    last_slot: Mapped[Slot | None] = mapped_column(
        Enum(
            Slot,
            values_callable=lambda e: [x.value for x in e],
            name="slot",
            native_enum=False,
            length=16,
        ),
        default=None,
    )
    last_local_date: Mapped[date | None] = mapped_column(Date, default=None)
    last_delivered_at: Mapped[datetime | None] = mapped_column(default=None)
    correlation_id: Mapped[str | None] = mapped_column(String(255), default=None)
    content_source: Mapped[ContentSourceKind | None] = mapped_column(
        Enum(
            ContentSourceKind,
            values_callable=lambda e: [x.value for x in e],
            name="contentsourcekind",
            native_enum=False,
            length=20,
        ),
        default=None,
    )
    reply_buffer: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<DeliveryLedgerEntry {self.account_id} {self.last_local_date} {self.last_slot}>"


class DeliveryClaim(Base):
    """Exactly-once guard for one (account, local date, slot).

    A tick inserts or re-acquires the claim before transmitting. A pending
    claim older than the lease is considered abandoned and may be taken over;
    a failed claim may be retried on the next tick; a sent claim is final.
    """

    __tablename__ = "delivery_claims"
    __table_args__ = (
        UniqueConstraint("account_id", "slot_date", "slot", name="uq_claim_account_date_slot"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    slot_date: Mapped[date] = mapped_column(Date, index=True)
    slot: Mapped[Slot] = mapped_column(
        Enum(
            Slot,
            values_callable=lambda e: [x.value for x in e],
            name="slot",
            native_enum=False,
            length=16,
        )
    )
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(
            ClaimStatus,
            values_callable=lambda e: [x.value for x in e],
            name="claimstatus",
            native_enum=False,
            length=16,
        ),
        default=ClaimStatus.PENDING,
    )
    claimed_at: Mapped[datetime]
    sent_at: Mapped[datetime | None] = mapped_column(default=None)
    error: Mapped[str | None] = mapped_column(Text, default=None)
