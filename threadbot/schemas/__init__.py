from threadbot.schemas.credits import BalanceResponse, GrantRequest
from threadbot.schemas.delivery import DeliveryResultResponse, TickResponse
from threadbot.schemas.generation import GeneratedDayOutput, GenerationRequest, GenerationResponse
from threadbot.schemas.linking import LinkCodeRequest, LinkCodeResponse
from threadbot.schemas.recipients import RecipientResponse, RecipientUpdate
from threadbot.schemas.telegram import TelegramUpdate

__all__ = [
    "BalanceResponse",
    "GrantRequest",
    "DeliveryResultResponse",
    "TickResponse",
    "GeneratedDayOutput",
    "GenerationRequest",
    "GenerationResponse",
    "LinkCodeRequest",
    "LinkCodeResponse",
    "RecipientResponse",
    "RecipientUpdate",
    "TelegramUpdate",
]
