"""
Content resolution behind a single interface.

The delivery engine only sees ContentSource: resolve the prompt for
(recipient, date, slot), append a reply to a previously delivered item, and
mark an item delivered. Which backend answers is decided per recipient.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Protocol

import httpx
from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import get_config
from threadbot.core.logging import get_logger
from threadbot.models.prompt import PromptItem, PromptStatus
from threadbot.models.recipient import ContentSourceKind, Recipient, Slot
from threadbot.services.formatting import format_prompt_list
from threadbot.services.notion import NotionClient, page_label

logger = get_logger(__name__)

REPLY_SEPARATOR = "\n\n---\n\n"


@dataclass
class ResolvedContent:
    """Normalized prompt content, independent of where it came from."""

    body: str
    label: str
    correlation_id: str


class ContentSource(Protocol):
    kind: ContentSourceKind
    reply_hint: str

    async def resolve(
        self, recipient: Recipient, prompt_date: date, slot: Slot
    ) -> ResolvedContent | None: ...

    async def append_reply(self, recipient: Recipient, correlation_id: str, text: str) -> bool: ...

    async def mark_delivered(self, correlation_id: str) -> None: ...


class GeneratedContentSource:
    """Prompts stored in the prompt_items table."""

    kind = ContentSourceKind.GENERATED

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.reply_hint = get_config().messages.reply_hint_generated

    async def resolve(
        self, recipient: Recipient, prompt_date: date, slot: Slot
    ) -> ResolvedContent | None:
        result = await self.db.execute(
            select(PromptItem).where(
                PromptItem.account_id == recipient.account_id,
                PromptItem.date == prompt_date,
                PromptItem.slot == slot,
            )
        )
        item = result.scalar_one_or_none()
        if not item or not item.prompts:
            return None

        return ResolvedContent(
            body=format_prompt_list(item.prompts),
            label=item.theme or item.name or get_config().messages.default_label,
            correlation_id=str(item.id),
        )

    async def append_reply(self, recipient: Recipient, correlation_id: str, text: str) -> bool:
        """Append text to the item's response in a single UPDATE.

        The item must belong to the recipient's account. Concurrent replies
        both land because the concatenation happens in the database.
        """
        try:
            item_id = uuid.UUID(correlation_id)
        except ValueError:
            logger.bind(correlation_id=correlation_id).warning("invalid_correlation_id")
            return False

        new_response = case(
            (
                (PromptItem.response.is_(None)) | (PromptItem.response == ""),
                text,
            ),
            else_=PromptItem.response + REPLY_SEPARATOR + text,
        )
        result = await self.db.execute(
            update(PromptItem)
            .where(PromptItem.id == item_id, PromptItem.account_id == recipient.account_id)
            .values(response=new_response)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_delivered(self, correlation_id: str) -> None:
        try:
            item_id = uuid.UUID(correlation_id)
        except ValueError:
            return
        await self.db.execute(
            update(PromptItem)
            .where(PromptItem.id == item_id)
            .values(status=PromptStatus.SENT)
            .execution_options(synchronize_session=False)
        )


class NotionContentSource:
    """Prompts stored as pages in the recipient's Notion database."""

    kind = ContentSourceKind.NOTION

    def __init__(self, client: NotionClient, database_id: str) -> None:
        self.client = client
        self.database_id = database_id
        self.reply_hint = get_config().messages.reply_hint_notion

    async def resolve(
        self, recipient: Recipient, prompt_date: date, slot: Slot
    ) -> ResolvedContent | None:
        page = await self.client.find_prompt_page(self.database_id, prompt_date, slot.value)
        if not page:
            return None

        body = await self.client.get_page_text(page["id"])
        if not body:
            logger.bind(account_id=recipient.account_id, page_id=page["id"]).info(
                "notion_page_empty"
            )
            return None

        return ResolvedContent(
            body=body,
            label=page_label(page, get_config().messages.default_label),
            correlation_id=page["id"],
        )

    async def append_reply(self, recipient: Recipient, correlation_id: str, text: str) -> bool:
        await self.client.append_reply(correlation_id, text)
        return True

    async def mark_delivered(self, correlation_id: str) -> None:
        # Notion pages carry no delivery status
        return None


def get_content_source(
    recipient: Recipient,
    db: AsyncSession,
    kind: ContentSourceKind | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ContentSource:
    """Pick the content source for a recipient.

    kind overrides the recipient's current selection, which lets replies reach
    the source an earlier delivery came from.
    """
    if (kind or recipient.content_source) == ContentSourceKind.NOTION:
        client = NotionClient(recipient.notion_token or "", transport=transport)
        return NotionContentSource(client, recipient.notion_database_id or "")
    return GeneratedContentSource(db)
