"""LLM prompt generation, the metered action behind the credit balance."""

from datetime import date, timedelta

import backoff
from openai import APIConnectionError, AsyncOpenAI, RateLimitError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import get_config, get_settings
from threadbot.core.logging import get_logger
from threadbot.models.prompt import PromptItem, PromptStatus
from threadbot.models.recipient import Slot
from threadbot.schemas.generation import GeneratedDayOutput
from threadbot.services.credits import run_metered

logger = get_logger(__name__)

SYSTEM_PROMPT = """You write daily journaling and social-writing prompts for a Telegram bot called "Threadbot".
Each day has a morning slot and an evening slot.

Rules:
- Morning prompts are forward-looking: ideas to write about, questions to explore
- Evening prompts are reflective: what happened, what was learned
- Every prompt is a single sentence, specific and answerable in a few lines
- Stay on the given theme; vary angles across days so prompts do not repeat
- Plain text only, no markdown, no numbering, no emojis

Output format is strictly JSON matching the schema provided."""


class GenerationError(Exception):
    """Raised when the model returns no usable prompts."""


def _build_user_prompt(day: date, theme: str, prompts_per_slot: int, context: str | None) -> str:
    prompt = f"""Write prompts for {day.strftime('%A')} {day.isoformat()}.

Theme: {theme}
Prompts per slot: {prompts_per_slot}
"""
    if context:
        prompt += f"\nAbout the writer:\n{context}\n"
    return prompt


@backoff.on_exception(
    backoff.expo,
    (RateLimitError, APIConnectionError),
    max_tries=5,
    max_time=120,
)
async def generate_day(
    client: AsyncOpenAI,
    day: date,
    theme: str,
    prompts_per_slot: int,
    context: str | None = None,
) -> GeneratedDayOutput:
    """
    Ask the model for one day of morning and evening prompts.

    Raises:
        GenerationError: if the response cannot be parsed
    """
    settings = get_settings()
    response = await client.beta.chat.completions.parse(
        model=settings.llm_model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": _build_user_prompt(day, theme, prompts_per_slot, context)},
        ],
        response_format=GeneratedDayOutput,
        temperature=0.8,
    )

    result = response.choices[0].message.parsed
    if result is None:
        raise GenerationError(f"No prompts returned for {day}")

    usage = response.usage
    if usage:
        logger.bind(
            day=str(day),
            usage_total=usage.total_tokens,
            usage_prompt=usage.prompt_tokens,
            usage_completion=usage.completion_tokens,
        ).info("prompts_generated")
    return result


async def _store_prompt(
    db: AsyncSession,
    account_id: str,
    day: date,
    slot: Slot,
    output: GeneratedDayOutput,
    prompts: list[str],
) -> PromptItem:
    """Create or overwrite the item for (account, day, slot) as scheduled."""
    result = await db.execute(
        select(PromptItem).where(
            PromptItem.account_id == account_id,
            PromptItem.date == day,
            PromptItem.slot == slot,
        )
    )
    item = result.scalar_one_or_none()
    if item is None:
        item = PromptItem(account_id=account_id, date=day, slot=slot)
        db.add(item)

    item.name = output.name
    item.theme = output.theme
    item.prompts = prompts
    item.status = PromptStatus.SCHEDULED
    return item


async def generate_prompts(
    db: AsyncSession,
    account_id: str,
    start_date: date,
    end_date: date,
    theme: str,
    context: str | None = None,
    client: AsyncOpenAI | None = None,
) -> list[PromptItem]:
    """
    Charge one generation credit, then generate and store prompts for a range.

    The charge is committed before the model is called. A failure during
    generation does not refund it.

    Raises:
        InsufficientCreditsError: if the account cannot pay; nothing is generated
        GenerationError: if the model returns no usable output
    """
    config = get_config().credits

    async def _work() -> list[PromptItem]:
        llm = client or AsyncOpenAI(api_key=get_settings().openai_api_key)
        items: list[PromptItem] = []
        day = start_date
        while day <= end_date:
            output = await generate_day(llm, day, theme, config.prompts_per_slot, context)
            slots = (
                (Slot.MORNING, output.morning_prompts),
                (Slot.EVENING, output.evening_prompts),
            )
            for slot, prompts in slots:
                item = await _store_prompt(
                    db, account_id, day, slot, output, prompts[: config.prompts_per_slot]
                )
                items.append(item)
            day += timedelta(days=1)
        await db.flush()
        return items

    items = await run_metered(db, account_id, _work, cost=config.generation_cost)
    logger.bind(account_id=account_id, items=len(items)).info("prompt_generation_completed")
    return items
