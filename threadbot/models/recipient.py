"""Per-account delivery configuration."""

import enum
import uuid

from sqlalchemy import Boolean, Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from threadbot.models.base import Base, TimestampMixin


class Slot(str, enum.Enum):
    """Named time-of-day delivery windows."""

    MORNING = "morning"
    EVENING = "evening"


class ContentSourceKind(str, enum.Enum):
    """Where a recipient's prompts come from."""

    NOTION = "notion"  # external content-management system
    GENERATED = "generated"  # internal generated-content store


class Recipient(Base, TimestampMixin):
    """Delivery configuration for one account.

    gateway_identity stays NULL until the account links a Telegram chat via a
    verification code. Credentials for the selected content source must be
    present while the recipient is active; the other source's fields may be
    NULL.
    """

    __tablename__ = "recipients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    gateway_identity: Mapped[str | None] = mapped_column(
        String(64), unique=True, index=True, default=None
    )

    timezone: Mapped[str] = mapped_column(String(50), default="America/New_York")
    morning_time: Mapped[str] = mapped_column(String(5), default="09:00")
    evening_time: Mapped[str] = mapped_column(String(5), default="18:00")
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    content_source: Mapped[ContentSourceKind] = mapped_column(
        Enum(
            ContentSourceKind,
            values_callable=lambda e: [x.value for x in e],
            name="contentsourcekind",
            native_enum=False,
            length=20,
        ),
        default=ContentSourceKind.GENERATED,
    )
    notion_token: Mapped[str | None] = mapped_column(Text, default=None)
    notion_database_id: Mapped[str | None] = mapped_column(String(64), default=None)

    def slot_time(self, slot: Slot | str) -> str:
        """Configured local "HH:MM" for a slot."""
        return self.morning_time if Slot(slot) == Slot.MORNING else self.evening_time

    def has_source_credentials(self) -> bool:
        if self.content_source == ContentSourceKind.NOTION:
            return bool(self.notion_token and self.notion_database_id)
        return True

    def __repr__(self) -> str:
        return f"<Recipient {self.account_id} source={self.content_source.value}>"
