"""Internal generated-content store."""

import enum
import uuid
from datetime import date

from sqlalchemy import JSON, Date, Enum, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from threadbot.models.base import Base, TimestampMixin
from threadbot.models.recipient import Slot


class PromptStatus(str, enum.Enum):
    """Lifecycle of a prompt item: draft -> scheduled -> sent."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENT = "sent"


class PromptItem(Base, TimestampMixin):
    """Prompts for one (account, date, slot), plus the replies logged against them."""

    __tablename__ = "prompt_items"
    __table_args__ = (
        UniqueConstraint("account_id", "date", "slot", name="uq_prompt_account_date_slot"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    slot: Mapped[Slot] = mapped_column(
        Enum(
            Slot,
            values_callable=lambda e: [x.value for x in e],
            name="slot",
            native_enum=False,
            length=16,
        )
    )
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    theme: Mapped[str | None] = mapped_column(String(255), default=None)
    prompts: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[PromptStatus] = mapped_column(
        Enum(
            PromptStatus,
            values_callable=lambda e: [x.value for x in e],
            name="promptstatus",
            native_enum=False,
            length=16,
        ),
        default=PromptStatus.DRAFT,
    )
    response: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<PromptItem {self.account_id} {self.date} {self.slot.value}>"
