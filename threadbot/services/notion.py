"""
Notion REST client for recipients whose prompts live in a Notion database.

Each database page is one prompt: a "Date" property, a title containing the
slot keyword ("Morning" / "Evening"), optional "Topic" / "Week" text
properties, and the prompt text as paragraph or list blocks.
"""

from datetime import date
from typing import Any

import httpx

from threadbot.config import NotionConfig, get_config
from threadbot.core.logging import get_logger
from threadbot.core.retry import RetryConfig, retry_with_backoff

logger = get_logger(__name__)

# Maximum length of a single rich_text content string
RICH_TEXT_LIMIT = 2000


class NotionError(Exception):
    """Raised when a Notion API call fails after retries."""


def _plain_text(rich_text: list[dict[str, Any]] | None) -> str:
    return "".join((rt or {}).get("plain_text", "") for rt in rich_text or [])


def _chunk_text(text: str, size: int = RICH_TEXT_LIMIT) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)] or [""]


def page_title(page: dict[str, Any]) -> str:
    """Plain-text title from the page's "Name" property."""
    name = page.get("properties", {}).get("Name") or {}
    return _plain_text(name.get("title"))


def page_label(page: dict[str, Any], default: str = "Daily Prompt") -> str:
    """Topic shown with the prompt: Topic, then Week, then the page title."""
    properties = page.get("properties", {})
    for prop in ("Topic", "Week"):
        text = _plain_text((properties.get(prop) or {}).get("rich_text"))
        if text:
            return text
    return page_title(page) or default


def extract_block_text(blocks: list[dict[str, Any]]) -> str:
    """
    Flatten page blocks to plain text.

    Paragraphs and numbered items are kept as-is, bulleted items get a "• "
    prefix, blank blocks and other block types are skipped. Blocks are joined
    with blank lines.
    """
    parts: list[str] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type not in ("paragraph", "bulleted_list_item", "numbered_list_item"):
            continue

        text = _plain_text((block.get(block_type) or {}).get("rich_text"))
        if not text.strip():
            continue
        parts.append(f"• {text}" if block_type == "bulleted_list_item" else text)

    return "\n\n".join(parts)


class NotionClient:
    """Async client for the subset of the Notion API used for prompts."""

    def __init__(
        self,
        token: str,
        config: NotionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.config = config or get_config().notion
        self._token = token
        self._transport = transport
        self._retry = retry or RetryConfig(max_attempts=self.config.max_retries)
        self._data_source_cache: dict[str, str] = {}

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Notion-Version": self.config.api_version,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request with retries on transient failures.

        Raises:
            NotionError: if the request still fails
        """

        async def _send() -> dict[str, Any]:
            async with httpx.AsyncClient(
                base_url=self.config.api_base,
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, headers=self._headers(), json=json)
                resp.raise_for_status()
                return resp.json()

        try:
            return await retry_with_backoff(_send, self._retry, operation_name=f"notion {path}")
        except httpx.HTTPStatusError as e:
            logger.bind(path=path, status=e.response.status_code).warning("notion_api_error")
            raise NotionError(f"Notion {method} {path} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.bind(path=path, error=str(e)).warning("notion_transport_error")
            raise NotionError(f"Notion {method} {path} failed: {e}") from e

    async def get_data_source_id(self, database_id: str) -> str:
        """Resolve a database's first data source (cached per client)."""
        if database_id in self._data_source_cache:
            return self._data_source_cache[database_id]

        database = await self._request("GET", f"/databases/{database_id}")
        data_sources = database.get("data_sources") or []
        if not data_sources:
            raise NotionError(f"Database {database_id} has no data sources")

        data_source_id = data_sources[0]["id"]
        self._data_source_cache[database_id] = data_source_id
        return data_source_id

    async def find_prompt_page(
        self,
        database_id: str,
        prompt_date: date,
        slot: str,
    ) -> dict[str, Any] | None:
        """Find the page dated prompt_date whose title mentions the slot."""
        data_source_id = await self.get_data_source_id(database_id)
        response = await self._request(
            "POST",
            f"/data_sources/{data_source_id}/query",
            json={
                "filter": {
                    "and": [{"property": "Date", "date": {"equals": prompt_date.isoformat()}}]
                },
                "sorts": [{"property": "Date", "direction": "descending"}],
            },
        )

        results = response.get("results")
        if not isinstance(results, list):
            raise NotionError("Invalid response structure from Notion query")

        keyword = slot.lower()
        for page in results:
            if isinstance(page, dict) and keyword in page_title(page).lower():
                return page
        return None

    async def get_page_text(self, page_id: str) -> str:
        response = await self._request("GET", f"/blocks/{page_id}/children")
        return extract_block_text(response.get("results") or [])

    async def append_reply(self, page_id: str, reply: str) -> None:
        """Append a "Reply: ..." paragraph block to the page."""
        await self._request(
            "PATCH",
            f"/blocks/{page_id}/children",
            json={
                "children": [
                    {
                        "object": "block",
                        "type": "paragraph",
                        "paragraph": {
                            "rich_text": [
                                {"type": "text", "text": {"content": chunk}}
                                for chunk in _chunk_text(f"Reply: {reply}")
                            ]
                        },
                    }
                ]
            },
        )
        logger.bind(page_id=page_id).debug("notion_reply_appended")
