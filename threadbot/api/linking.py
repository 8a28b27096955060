"""Verification code issuance for Telegram linking."""

from fastapi import APIRouter, Request

from threadbot.config import get_config
from threadbot.core.rate_limit import limiter
from threadbot.dependencies import DBSession, InternalAuth
from threadbot.schemas.linking import LinkCodeRequest, LinkCodeResponse
from threadbot.services.linking import issue_code

router = APIRouter(dependencies=[InternalAuth])


@router.post("/link/code", response_model=LinkCodeResponse)
@limiter.limit("5/minute")
async def create_link_code(
    request: Request,
    body: LinkCodeRequest,
    db: DBSession,
) -> LinkCodeResponse:
    """
    Issue a verification code for an account.

    Any earlier unused code for the account stops working.
    """
    issued = await issue_code(db, body.account_id, timezone=body.timezone)
    return LinkCodeResponse(
        code=issued.code,
        expires_at=issued.expires_at,
        ttl_minutes=get_config().linking.code_ttl_minutes,
    )
