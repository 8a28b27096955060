"""
Metered generation credits.

The balance is only ever decremented by a single conditional UPDATE, so two
concurrent requests can never both spend the last credit. Callers must
decrement before starting metered work and must not start it when the
decrement fails. A decrement is never refunded here; refunds are explicit
grants by the caller.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import get_config
from threadbot.core.logging import get_logger
from threadbot.models.credits import CreditBalance

logger = get_logger(__name__)

T = TypeVar("T")


class InsufficientCreditsError(Exception):
    """Raised when metered work is requested without enough credits."""

    def __init__(self, account_id: str, balance: int, required: int) -> None:
        super().__init__(f"Insufficient credits for {account_id}: {balance} < {required}")
        self.account_id = account_id
        self.balance = balance
        self.required = required


@dataclass
class ConsumptionResult:
    ok: bool
    balance: int
    insufficient_funds: bool = False


async def get_balance(db: AsyncSession, account_id: str) -> int:
    balance = await db.scalar(
        select(CreditBalance.balance).where(CreditBalance.account_id == account_id)
    )
    return balance or 0


async def decrement_if_available(
    db: AsyncSession,
    account_id: str,
    cost: int | None = None,
) -> ConsumptionResult:
    """
    Spend `cost` credits if, and only if, the balance covers it.

    The check and the decrement are one statement. An account without a
    balance row has no credits.

    Args:
        db: Database session (commit to make the spend durable)
        account_id: Account being charged
        cost: Credits to spend, defaults to the configured generation cost

    Returns:
        ConsumptionResult with the balance after the operation
    """
    if cost is None:
        cost = get_config().credits.generation_cost

    result = await db.execute(
        update(CreditBalance)
        .where(CreditBalance.account_id == account_id, CreditBalance.balance >= cost)
        .values(balance=CreditBalance.balance - cost)
        .returning(CreditBalance.balance)
        .execution_options(synchronize_session=False)
    )
    remaining = result.scalar_one_or_none()

    if remaining is None:
        balance = await get_balance(db, account_id)
        logger.bind(account_id=account_id, balance=balance, required=cost).info(
            "credits_insufficient"
        )
        return ConsumptionResult(ok=False, balance=balance, insufficient_funds=True)

    logger.bind(account_id=account_id, cost=cost, remaining=remaining).info("credits_consumed")
    return ConsumptionResult(ok=True, balance=remaining)


async def grant_credits(db: AsyncSession, account_id: str, amount: int) -> int:
    """Add credits to an account, creating its balance row if needed.

    Returns:
        The new balance
    """
    if amount <= 0:
        raise ValueError("Grant amount must be positive")

    stmt = (
        update(CreditBalance)
        .where(CreditBalance.account_id == account_id)
        .values(balance=CreditBalance.balance + amount)
        .returning(CreditBalance.balance)
        .execution_options(synchronize_session=False)
    )
    balance = (await db.execute(stmt)).scalar_one_or_none()

    if balance is None:
        try:
            async with db.begin_nested():
                db.add(CreditBalance(account_id=account_id, balance=amount))
            balance = amount
        except IntegrityError:
            balance = (await db.execute(stmt)).scalar_one()

    logger.bind(account_id=account_id, amount=amount, balance=balance).info("credits_granted")
    return balance


async def run_metered(
    db: AsyncSession,
    account_id: str,
    work: Callable[[], Awaitable[T]],
    cost: int | None = None,
) -> T:
    """
    Charge the account, commit the charge, then run the work.

    Raises:
        InsufficientCreditsError: if the charge fails; work is not started
    """
    if cost is None:
        cost = get_config().credits.generation_cost

    charge = await decrement_if_available(db, account_id, cost)
    if not charge.ok:
        raise InsufficientCreditsError(account_id, charge.balance, cost)
    await db.commit()

    return await work()
