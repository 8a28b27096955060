"""Rate limiting for the HTTP surface using SlowAPI.

Linking attempts from the gateway are limited separately and durably by the
attempt counter table; this limiter only protects the code-issuance and
send-now endpoints from request floods.
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse


def account_or_remote_address(request: Request) -> str:
    """Key requests by the account in the path when present, else by client IP."""
    account_id = request.path_params.get("account_id")
    if account_id:
        return f"account:{account_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Please try again later."},
    )
