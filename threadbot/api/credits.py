"""Credit balance endpoints."""

from fastapi import APIRouter

from threadbot.core.logging import get_logger
from threadbot.dependencies import DBSession, InternalAuth
from threadbot.schemas.credits import BalanceResponse, GrantRequest
from threadbot.services.credits import get_balance, grant_credits

logger = get_logger(__name__)
router = APIRouter(dependencies=[InternalAuth])


@router.get("/credits/{account_id}", response_model=BalanceResponse)
async def read_balance(account_id: str, db: DBSession) -> BalanceResponse:
    return BalanceResponse(account_id=account_id, balance=await get_balance(db, account_id))


@router.post("/credits/{account_id}/grant", response_model=BalanceResponse)
async def grant(account_id: str, body: GrantRequest, db: DBSession) -> BalanceResponse:
    """Add credits (purchase or explicit refund)."""
    balance = await grant_credits(db, account_id, body.amount)
    logger.bind(account_id=account_id, amount=body.amount, reason=body.reason).info(
        "credits_grant_requested"
    )
    return BalanceResponse(account_id=account_id, balance=balance)
