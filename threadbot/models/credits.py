"""Per-account generation credits."""

import uuid

from sqlalchemy import CheckConstraint, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from threadbot.models.base import Base, TimestampMixin


class CreditBalance(Base, TimestampMixin):
    """Non-negative credit counter; decremented only by a conditional update."""

    __tablename__ = "credit_balances"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_credit_balance_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    balance: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<CreditBalance {self.account_id} balance={self.balance}>"
