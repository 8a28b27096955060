from datetime import date

from pydantic import BaseModel, Field, model_validator


class GeneratedDayOutput(BaseModel):
    """
    Structured output schema for one day of generated prompts.

    Used with OpenAI's response_format for guaranteed schema compliance.
    """

    name: str = Field(description="Short title for the day, max 60 characters", max_length=120)
    theme: str = Field(description="Theme the day's prompts explore", max_length=200)
    morning_prompts: list[str] = Field(
        description="Writing prompts for the morning slot",
        min_length=1,
        max_length=10,
    )
    evening_prompts: list[str] = Field(
        description="Reflection prompts for the evening slot",
        min_length=1,
        max_length=10,
    )


class GenerationRequest(BaseModel):
    """Request body for metered prompt generation."""

    account_id: str = Field(min_length=1, max_length=64)
    start_date: date
    end_date: date
    theme: str = Field(min_length=1, max_length=200)
    context: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_range(self) -> "GenerationRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.end_date - self.start_date).days >= 31:
            raise ValueError("At most 31 days can be generated at once")
        return self


class GenerationResponse(BaseModel):
    account_id: str
    items_created: int
    balance: int
