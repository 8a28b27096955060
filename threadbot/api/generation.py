"""Metered prompt generation."""

from fastapi import APIRouter, HTTPException, status
from openai import OpenAIError

from threadbot.core.logging import get_logger
from threadbot.dependencies import DBSession, InternalAuth
from threadbot.schemas.generation import GenerationRequest, GenerationResponse
from threadbot.services.credits import InsufficientCreditsError, get_balance
from threadbot.services.generation import GenerationError, generate_prompts

logger = get_logger(__name__)
router = APIRouter(dependencies=[InternalAuth])


@router.post("/generation/prompts", response_model=GenerationResponse)
async def generate(body: GenerationRequest, db: DBSession) -> GenerationResponse:
    """
    Spend one credit and generate prompts for a date range.

    402 when the account cannot pay. A failure after the charge is not
    refunded automatically; grant credits explicitly if needed.
    """
    try:
        items = await generate_prompts(
            db,
            body.account_id,
            body.start_date,
            body.end_date,
            theme=body.theme,
            context=body.context,
        )
    except InsufficientCreditsError as e:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": "Not enough credits for prompt generation",
                "balance": e.balance,
                "required": e.required,
            },
        )
    except (GenerationError, OpenAIError) as e:
        logger.bind(account_id=body.account_id, error=str(e)).error("prompt_generation_failed")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Prompt generation failed; the credit was spent",
        )

    return GenerationResponse(
        account_id=body.account_id,
        items_created=len(items),
        balance=await get_balance(db, body.account_id),
    )
