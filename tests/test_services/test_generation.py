"""Tests for metered LLM prompt generation."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from threadbot.models.prompt import PromptItem, PromptStatus
from threadbot.models.recipient import Slot
from threadbot.schemas.generation import GeneratedDayOutput
from threadbot.services.credits import InsufficientCreditsError, get_balance, grant_credits
from threadbot.services.generation import GenerationError, generate_prompts

pytestmark = pytest.mark.asyncio


def _mock_client(parsed: GeneratedDayOutput | None) -> MagicMock:
    """OpenAI client whose structured-output call returns `parsed`."""
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.parsed = parsed
    response.usage = None

    client = MagicMock()
    client.beta.chat.completions.parse = AsyncMock(return_value=response)
    return client


@pytest.fixture
def day_output() -> GeneratedDayOutput:
    return GeneratedDayOutput(
        name="Ship small",
        theme="Shipping side projects",
        morning_prompts=[
            "What will you ship today?",
            "What is the smallest next step?",
            "Who needs it?",
            "Extra prompt",
        ],
        evening_prompts=["What did you ship?"],
    )


class TestGeneratePrompts:
    """Tests for generate_prompts."""

    async def test_generates_and_charges_one_credit(self, db_session, day_output):
        await grant_credits(db_session, "acct-1", 2)
        client = _mock_client(day_output)

        items = await generate_prompts(
            db_session,
            "acct-1",
            date(2026, 1, 5),
            date(2026, 1, 6),
            theme="Shipping",
            client=client,
        )

        assert len(items) == 4
        assert client.beta.chat.completions.parse.await_count == 2
        assert await get_balance(db_session, "acct-1") == 1

        result = await db_session.execute(
            select(PromptItem).where(
                PromptItem.account_id == "acct-1",
                PromptItem.date == date(2026, 1, 5),
                PromptItem.slot == Slot.MORNING,
            )
        )
        morning = result.scalar_one()
        # Trimmed to the configured prompts per slot
        assert len(morning.prompts) == 3
        assert morning.status == PromptStatus.SCHEDULED
        assert morning.theme == "Shipping side projects"

    async def test_regenerating_overwrites_existing_item(
        self, db_session, day_output, prompt_factory
    ):
        await prompt_factory("acct-1", date(2026, 1, 5), Slot.EVENING, prompts=["Old prompt"])
        await grant_credits(db_session, "acct-1", 1)

        await generate_prompts(
            db_session,
            "acct-1",
            date(2026, 1, 5),
            date(2026, 1, 5),
            theme="Shipping",
            client=_mock_client(day_output),
        )

        result = await db_session.execute(
            select(PromptItem).where(
                PromptItem.account_id == "acct-1", PromptItem.slot == Slot.EVENING
            )
        )
        items = result.scalars().all()
        assert len(items) == 1
        assert items[0].prompts == ["What did you ship?"]

    async def test_no_credits_means_no_model_call(self, db_session, day_output):
        client = _mock_client(day_output)

        with pytest.raises(InsufficientCreditsError):
            await generate_prompts(
                db_session,
                "acct-1",
                date(2026, 1, 5),
                date(2026, 1, 5),
                theme="Shipping",
                client=client,
            )

        client.beta.chat.completions.parse.assert_not_awaited()

    async def test_unparseable_output_keeps_charge(self, db_session):
        await grant_credits(db_session, "acct-1", 1)

        with pytest.raises(GenerationError):
            await generate_prompts(
                db_session,
                "acct-1",
                date(2026, 1, 5),
                date(2026, 1, 5),
                theme="Shipping",
                client=_mock_client(None),
            )

        assert await get_balance(db_session, "acct-1") == 0
