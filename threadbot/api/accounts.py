"""Account-level data management."""

from fastapi import APIRouter

from threadbot.dependencies import DBSession, InternalAuth
from threadbot.services.maintenance import purge_account_data

router = APIRouter(dependencies=[InternalAuth])


@router.delete("/accounts/{account_id}/data")
async def purge_account(account_id: str, db: DBSession) -> dict:
    """
    Delete all delivery data for an account.

    The credit balance is kept so purchased credits survive a reset.
    """
    deleted = await purge_account_data(db, account_id)
    return {"ok": True, "deleted": deleted}
