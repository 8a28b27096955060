from datetime import datetime

from pydantic import BaseModel, Field


class LinkCodeRequest(BaseModel):
    """Request body for issuing a verification code."""

    account_id: str = Field(min_length=1, max_length=64)
    timezone: str | None = Field(default=None, max_length=50)


class LinkCodeResponse(BaseModel):
    code: str
    expires_at: datetime
    ttl_minutes: int
