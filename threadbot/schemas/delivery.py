from pydantic import BaseModel


class DeliveryResultResponse(BaseModel):
    account_id: str
    slot: str
    sent: bool
    skipped_reason: str | None = None
    error: str | None = None
    slot_date: str | None = None
    correlation_id: str | None = None


class TickResponse(BaseModel):
    """Response of a scheduler-triggered delivery tick."""

    slot: str
    checked: int
    due: int
    sent: int
    skipped: int
    failed: int
    results: list[DeliveryResultResponse]
