"""Verification codes and per-identity link attempt counters."""

import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from threadbot.models.base import Base, TimestampMixin


class VerificationCode(Base, TimestampMixin):
    """Short-lived single-use code binding a gateway identity to an account."""

    __tablename__ = "verification_codes"
    __table_args__ = (
        # At most one unconsumed row per code value, whatever the account
        Index(
            "uq_verification_codes_unconsumed_code",
            "code",
            unique=True,
            postgresql_where=text("consumed_at IS NULL"),
            sqlite_where=text("consumed_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    code: Mapped[str] = mapped_column(String(12), index=True)
    timezone: Mapped[str | None] = mapped_column(String(50), default=None)
    expires_at: Mapped[datetime] = mapped_column(index=True)
    consumed_at: Mapped[datetime | None] = mapped_column(default=None)
    gateway_identity: Mapped[str | None] = mapped_column(String(64), default=None)

    def __repr__(self) -> str:
        return f"<VerificationCode {self.account_id} expires={self.expires_at}>"


class LinkAttempt(Base, TimestampMixin):
    """Failed link attempts counted per gateway identity within a rolling window."""

    __tablename__ = "link_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gateway_identity: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    window_started_at: Mapped[datetime]
    last_attempt_at: Mapped[datetime]
    locked_until: Mapped[datetime | None] = mapped_column(default=None)
