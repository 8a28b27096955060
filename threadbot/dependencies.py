from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import AppConfig, Settings, get_config, get_settings
from threadbot.core.database import get_db
from threadbot.core.logging import get_logger
from threadbot.core.security import extract_bearer_token, secrets_match
from threadbot.services.telegram import MessagingGateway, get_gateway

logger = get_logger(__name__)

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Config = Annotated[AppConfig, Depends(get_config)]
Gateway = Annotated[MessagingGateway, Depends(get_gateway)]


async def require_internal_key(
    settings: AppSettings,
    x_internal_key: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    """Authenticate calls from the surrounding application; 401 otherwise."""
    provided = x_internal_key or extract_bearer_token(authorization)
    if not secrets_match(provided, settings.internal_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


async def require_cron_auth(
    request: Request,
    settings: AppSettings,
    x_cron_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> str:
    """
    Authenticate a scheduler trigger.

    Accepts the shared secret (Bearer or X-Cron-Secret) or, when configured,
    the platform-asserted trusted header with value "1". Fails closed when no
    signal is present or nothing is configured.

    Returns:
        Which signal authenticated the call
    """
    provided = extract_bearer_token(authorization) or x_cron_secret
    if secrets_match(provided, settings.cron_secret):
        return "secret"

    trusted_header = settings.cron_trusted_header
    if trusted_header and request.headers.get(trusted_header) == "1":
        return "trusted-header"

    logger.bind(client=request.client.host if request.client else None).warning(
        "cron_trigger_unauthorized"
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
    )


InternalAuth = Depends(require_internal_key)
CronAuth = Annotated[str, Depends(require_cron_auth)]
