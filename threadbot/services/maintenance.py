"""Housekeeping: periodic sweep and per-account data purge."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.core.logging import get_logger
from threadbot.models.delivery import DeliveryClaim, DeliveryLedgerEntry
from threadbot.models.linking import LinkAttempt, VerificationCode
from threadbot.models.prompt import PromptItem
from threadbot.models.recipient import Recipient
from threadbot.services.ledger import delete_stale_claims
from threadbot.services.linking import sweep_linking_state

logger = get_logger(__name__)

CLAIM_RETENTION_DAYS = 7


async def run_sweep(db: AsyncSession) -> dict[str, int]:
    """Remove expired codes, elapsed attempt counters and old delivery claims.

    Lazy expiry checks stay authoritative; this only keeps tables small.
    """
    stats = await sweep_linking_state(db)
    stats["old_claims"] = await delete_stale_claims(db, older_than_days=CLAIM_RETENTION_DAYS)
    logger.bind(**stats).info("sweep_completed")
    return stats


async def purge_account_data(db: AsyncSession, account_id: str) -> dict[str, int]:
    """
    Delete everything stored for an account except its credit balance.

    The recipient's linked chat is released, so the attempt counter for that
    chat is dropped too.
    """
    gateway_identity = await db.scalar(
        select(Recipient.gateway_identity).where(Recipient.account_id == account_id)
    )

    counts: dict[str, int] = {}
    for name, model in (
        ("recipients", Recipient),
        ("ledger_entries", DeliveryLedgerEntry),
        ("claims", DeliveryClaim),
        ("prompt_items", PromptItem),
        ("verification_codes", VerificationCode),
    ):
        result = await db.execute(delete(model).where(model.account_id == account_id))
        counts[name] = result.rowcount or 0

    if gateway_identity:
        await db.execute(delete(LinkAttempt).where(LinkAttempt.gateway_identity == gateway_identity))

    logger.bind(account_id=account_id, **counts).info("account_data_purged")
    return counts
