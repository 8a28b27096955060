"""Recipient configuration endpoints."""

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import select

from threadbot.api.cron import parse_slot
from threadbot.config import get_config
from threadbot.core.logging import get_logger
from threadbot.core.rate_limit import account_or_remote_address, limiter
from threadbot.dependencies import DBSession, Gateway, InternalAuth
from threadbot.models.recipient import ContentSourceKind, Recipient
from threadbot.schemas.delivery import DeliveryResultResponse
from threadbot.schemas.recipients import RecipientResponse, RecipientUpdate
from threadbot.services.delivery import send_now

logger = get_logger(__name__)
router = APIRouter(dependencies=[InternalAuth])


def _to_response(recipient: Recipient) -> RecipientResponse:
    return RecipientResponse(
        account_id=recipient.account_id,
        linked=recipient.gateway_identity is not None,
        timezone=recipient.timezone,
        morning_time=recipient.morning_time,
        evening_time=recipient.evening_time,
        is_active=recipient.is_active,
        content_source=recipient.content_source,
        has_notion_credentials=bool(recipient.notion_token and recipient.notion_database_id),
        updated_at=recipient.updated_at,
    )


async def _get_recipient(db, account_id: str) -> Recipient | None:
    result = await db.execute(select(Recipient).where(Recipient.account_id == account_id))
    return result.scalar_one_or_none()


@router.get("/recipients/{account_id}", response_model=RecipientResponse)
async def get_recipient(account_id: str, db: DBSession) -> RecipientResponse:
    recipient = await _get_recipient(db, account_id)
    if not recipient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
    return _to_response(recipient)


@router.put("/recipients/{account_id}", response_model=RecipientResponse)
async def upsert_recipient(
    account_id: str,
    body: RecipientUpdate,
    db: DBSession,
) -> RecipientResponse:
    """
    Create or update a recipient configuration.

    An active recipient must have credentials for its selected source.
    """
    recipient = await _get_recipient(db, account_id)
    if recipient is None:
        schedule = get_config().schedule
        recipient = Recipient(
            account_id=account_id,
            timezone=schedule.default_timezone,
            morning_time=schedule.default_morning_time,
            evening_time=schedule.default_evening_time,
            is_active=False,
            content_source=ContentSourceKind.GENERATED,
        )
        db.add(recipient)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(recipient, field, value)

    if recipient.is_active and not recipient.has_source_credentials():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Notion token and database id are required for the notion source",
        )

    await db.flush()
    logger.bind(
        account_id=account_id,
        source=recipient.content_source.value,
        active=recipient.is_active,
    ).info("recipient_updated")
    return _to_response(recipient)


@router.post("/recipients/{account_id}/send-now", response_model=DeliveryResultResponse)
@limiter.limit("10/minute", key_func=account_or_remote_address)
async def send_prompt_now(
    request: Request,
    account_id: str,
    db: DBSession,
    gateway: Gateway,
    slot: str = Query(..., description="Slot to send: morning or evening"),
) -> DeliveryResultResponse:
    """Send today's prompt for a slot right away (counts as that slot's delivery)."""
    slot_value = parse_slot(slot)
    recipient = await _get_recipient(db, account_id)
    if not recipient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")

    result = await send_now(db, recipient, slot_value, gateway)
    return DeliveryResultResponse.model_validate(result.to_dict())
