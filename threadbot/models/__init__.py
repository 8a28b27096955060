from threadbot.models.base import Base
from threadbot.models.credits import CreditBalance
from threadbot.models.delivery import ClaimStatus, DeliveryClaim, DeliveryLedgerEntry
from threadbot.models.job_run import JobRun
from threadbot.models.linking import LinkAttempt, VerificationCode
from threadbot.models.prompt import PromptItem, PromptStatus
from threadbot.models.recipient import ContentSourceKind, Recipient, Slot

__all__ = [
    "Base",
    "Recipient",
    "Slot",
    "ContentSourceKind",
    "PromptItem",
    "PromptStatus",
    "DeliveryLedgerEntry",
    "DeliveryClaim",
    "ClaimStatus",
    "VerificationCode",
    "LinkAttempt",
    "CreditBalance",
    "JobRun",
]
