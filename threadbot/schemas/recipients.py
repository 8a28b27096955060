from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from threadbot.models.recipient import ContentSourceKind


class RecipientUpdate(BaseModel):
    """Request body for creating or updating a recipient configuration.

    Omitted fields keep their current value (or the default on creation).
    """

    timezone: str | None = Field(default=None, max_length=50)
    morning_time: str | None = Field(default=None, max_length=5)
    evening_time: str | None = Field(default=None, max_length=5)
    is_active: bool | None = None
    content_source: ContentSourceKind | None = None
    notion_token: str | None = None
    notion_database_id: str | None = Field(default=None, max_length=64)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        from threadbot.core.datetime_utils import is_valid_timezone

        if not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("morning_time", "evening_time")
    @classmethod
    def validate_slot_time(cls, v: str | None) -> str | None:
        if v is None:
            return v
        from threadbot.core.datetime_utils import normalize_slot_time

        return normalize_slot_time(v)

    @model_validator(mode="after")
    def strip_blank_credentials(self) -> "RecipientUpdate":
        if self.notion_token is not None and not self.notion_token.strip():
            self.notion_token = None
        if self.notion_database_id is not None and not self.notion_database_id.strip():
            self.notion_database_id = None
        return self


class RecipientResponse(BaseModel):
    """Recipient configuration as returned by the API (credentials omitted)."""

    account_id: str
    linked: bool
    timezone: str
    morning_time: str
    evening_time: str
    is_active: bool
    content_source: ContentSourceKind
    has_notion_credentials: bool
    updated_at: datetime | None = None
