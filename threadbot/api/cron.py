"""Scheduler trigger for delivery ticks."""

from fastapi import APIRouter, HTTPException, Query, status

from threadbot.core.logging import get_logger
from threadbot.dependencies import CronAuth, DBSession, Gateway
from threadbot.models.recipient import Slot
from threadbot.schemas.delivery import TickResponse
from threadbot.services.delivery import run_delivery_tick

logger = get_logger(__name__)
router = APIRouter()


def parse_slot(value: str) -> Slot:
    try:
        return Slot(value.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid slot: {value!r}. Expected one of: "
            + ", ".join(s.value for s in Slot),
        )


@router.api_route("/cron/deliver", methods=["GET", "POST"], response_model=TickResponse)
async def trigger_delivery(
    db: DBSession,
    gateway: Gateway,
    auth_method: CronAuth,
    slot: str = Query(..., description="Slot to deliver: morning or evening"),
) -> TickResponse:
    """
    Run one delivery tick for a slot.

    Safe to call on overlapping schedules; each recipient is sent at most
    once per local day and slot.
    """
    slot_value = parse_slot(slot)
    logger.bind(slot=slot_value.value, signal=auth_method).info("cron_delivery_triggered")

    summary = await run_delivery_tick(db, slot_value, gateway)
    return TickResponse.model_validate(summary.to_dict())
