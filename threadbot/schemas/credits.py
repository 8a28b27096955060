from pydantic import BaseModel, Field


class BalanceResponse(BaseModel):
    account_id: str
    balance: int


class GrantRequest(BaseModel):
    """Explicit credit: a purchase or a refund after failed metered work."""

    amount: int = Field(gt=0, le=10_000)
    reason: str | None = Field(default=None, max_length=255)
