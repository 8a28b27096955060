"""
Identity linking: bind a Telegram chat to an account with a short-lived code.

Flow:
1. The account asks for a code (issue_code); any earlier unused code dies.
2. The user sends the code (or a greeting like "hello") to the bot.
3. attempt_link consumes the code exactly once and binds the chat id.

Failed attempts are counted per chat in a rolling window. Reaching the
threshold locks the chat out; locked attempts are rejected without being
counted. Expiry is checked lazily at consumption time.
"""

import enum
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, delete, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from threadbot.config import get_config
from threadbot.core.datetime_utils import get_cutoff, get_expiry, is_valid_timezone, utc_now
from threadbot.core.logging import get_logger
from threadbot.core.security import generate_verification_code
from threadbot.models.linking import LinkAttempt, VerificationCode
from threadbot.models.prompt import PromptItem
from threadbot.models.recipient import ContentSourceKind, Recipient

logger = get_logger(__name__)

MAX_CODE_GENERATION_ATTEMPTS = 5


class LinkFailure(str, enum.Enum):
    INVALID_CODE = "invalid-code"
    RATE_LIMITED = "rate-limited"


@dataclass
class IssuedCode:
    code: str
    expires_at: datetime


@dataclass
class LinkResult:
    """Outcome of a link attempt.

    retry_after_seconds is set for rate-limited results, attempts_remaining
    for invalid-code results.
    """

    linked: bool
    reason: LinkFailure | None = None
    account_id: str | None = None
    retry_after_seconds: int | None = None
    attempts_remaining: int | None = None


# =============================================================================
# Message shape
# =============================================================================


def extract_code(text: str, length: int | None = None) -> str | None:
    """First standalone run of exactly `length` digits in text."""
    length = length or get_config().linking.code_length
    match = re.search(rf"(?<!\d)(\d{{{length}}})(?!\d)", text)
    return match.group(1) if match else None


def is_bare_code(text: str, length: int | None = None) -> bool:
    length = length or get_config().linking.code_length
    return re.fullmatch(rf"\d{{{length}}}", text.strip()) is not None


def is_trigger_phrase(text: str) -> bool:
    """True if any word in text is a configured trigger phrase."""
    phrases = {p.lower() for p in get_config().linking.trigger_phrases}
    return any(word in phrases for word in re.findall(r"[a-z]+", text.lower()))


def looks_like_link_attempt(text: str) -> bool:
    return extract_code(text) is not None or is_trigger_phrase(text)


# =============================================================================
# Code issuance
# =============================================================================


async def issue_code(
    db: AsyncSession,
    account_id: str,
    timezone: str | None = None,
    now: datetime | None = None,
) -> IssuedCode:
    """
    Issue a fresh verification code for an account.

    Any unconsumed code previously issued to the account is deleted. The new
    code never collides with another account's live code.

    Args:
        db: Database session
        account_id: Account the code will link to
        timezone: Browser-detected timezone used to seed a new recipient
        now: Issuance time (naive UTC), defaults to now

    Returns:
        IssuedCode with the code and its expiry
    """
    config = get_config().linking
    now = now or utc_now()

    await db.execute(
        delete(VerificationCode).where(
            VerificationCode.account_id == account_id,
            VerificationCode.consumed_at.is_(None),
        )
    )

    expires_at = get_expiry(minutes=config.code_ttl_minutes, now=now)
    for _ in range(MAX_CODE_GENERATION_ATTEMPTS):
        code = generate_verification_code(config.code_length)
        # An expired, never-used row only holds the value hostage until the sweep
        await db.execute(
            delete(VerificationCode).where(
                VerificationCode.code == code,
                VerificationCode.consumed_at.is_(None),
                VerificationCode.expires_at <= now,
            )
        )
        try:
            # The partial unique index on unconsumed codes rejects a live duplicate
            async with db.begin_nested():
                db.add(
                    VerificationCode(
                        account_id=account_id,
                        code=code,
                        timezone=timezone if timezone and is_valid_timezone(timezone) else None,
                        expires_at=expires_at,
                    )
                )
            break
        except IntegrityError:
            logger.bind(account_id=account_id).debug("verification_code_collision")
    else:
        raise RuntimeError("Could not generate a unique verification code")

    logger.bind(account_id=account_id, expires_at=expires_at.isoformat()).info(
        "verification_code_issued"
    )
    return IssuedCode(code=code, expires_at=expires_at)


# =============================================================================
# Attempt counter
# =============================================================================


async def _reset_counter_if_elapsed(
    db: AsyncSession, counter: LinkAttempt, now: datetime
) -> None:
    """Start a new window when the lockout or the rolling window has elapsed."""
    config = get_config().linking
    lockout_over = counter.locked_until is not None and now >= counter.locked_until
    window_over = counter.locked_until is None and now - counter.window_started_at >= timedelta(
        minutes=config.attempt_window_minutes
    )
    if not (lockout_over or window_over):
        return

    await db.execute(
        update(LinkAttempt)
        .where(LinkAttempt.id == counter.id)
        .values(attempt_count=0, window_started_at=now, locked_until=None)
        .execution_options(synchronize_session=False)
    )


async def _record_failed_attempt(db: AsyncSession, gateway_identity: str, now: datetime) -> int:
    """Atomically count a failed attempt and lock out at the threshold.

    Returns:
        The attempt count after this attempt
    """
    config = get_config().linking
    lock_until = get_expiry(minutes=config.lockout_minutes, now=now)

    stmt = (
        update(LinkAttempt)
        .where(LinkAttempt.gateway_identity == gateway_identity)
        .values(
            attempt_count=LinkAttempt.attempt_count + 1,
            last_attempt_at=now,
            locked_until=case(
                (LinkAttempt.attempt_count + 1 >= config.max_attempts, lock_until),
                else_=LinkAttempt.locked_until,
            ),
        )
        .returning(LinkAttempt.attempt_count)
        .execution_options(synchronize_session=False)
    )
    count = (await db.execute(stmt)).scalar_one_or_none()
    if count is not None:
        return count

    try:
        async with db.begin_nested():
            db.add(
                LinkAttempt(
                    gateway_identity=gateway_identity,
                    attempt_count=1,
                    window_started_at=now,
                    last_attempt_at=now,
                    locked_until=lock_until if config.max_attempts <= 1 else None,
                )
            )
        return 1
    except IntegrityError:
        # Another attempt created the row first
        return (await db.execute(stmt)).scalar_one()


async def _clear_counter(db: AsyncSession, gateway_identity: str) -> None:
    await db.execute(delete(LinkAttempt).where(LinkAttempt.gateway_identity == gateway_identity))


# =============================================================================
# Linking
# =============================================================================


async def _find_live_code(
    db: AsyncSession, submitted_text: str, now: datetime
) -> VerificationCode | None:
    query = select(VerificationCode).where(
        VerificationCode.consumed_at.is_(None),
        VerificationCode.expires_at > now,
    )

    code = extract_code(submitted_text)
    if code:
        query = query.where(VerificationCode.code == code)
    elif not is_trigger_phrase(submitted_text):
        return None

    # Most recently issued first; a trigger phrase binds that one
    result = await db.execute(query.order_by(VerificationCode.expires_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def has_live_code(db: AsyncSession, submitted_text: str, now: datetime | None = None) -> bool:
    """True if the text names a code that could link right now."""
    return await _find_live_code(db, submitted_text, now or utc_now()) is not None


async def _consume_code(
    db: AsyncSession, code_id, gateway_identity: str, now: datetime
) -> bool:
    """Mark a code consumed; only one caller can ever win."""
    result = await db.execute(
        update(VerificationCode)
        .where(
            VerificationCode.id == code_id,
            VerificationCode.consumed_at.is_(None),
            VerificationCode.expires_at > now,
        )
        .values(consumed_at=now, gateway_identity=gateway_identity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _bind_identity(
    db: AsyncSession, verification: VerificationCode, gateway_identity: str
) -> Recipient:
    """Attach the chat to the account's recipient, creating it on first link.

    Accounts with generated prompts are switched to that source and activated.
    """
    account_id = verification.account_id
    schedule = get_config().schedule

    # A chat belongs to at most one account
    await db.execute(
        update(Recipient)
        .where(
            Recipient.gateway_identity == gateway_identity,
            Recipient.account_id != account_id,
        )
        .values(gateway_identity=None, is_active=False)
        .execution_options(synchronize_session=False)
    )

    has_prompts = await db.scalar(select(exists().where(PromptItem.account_id == account_id)))

    result = await db.execute(select(Recipient).where(Recipient.account_id == account_id))
    recipient = result.scalar_one_or_none()

    if recipient is None:
        recipient = Recipient(
            account_id=account_id,
            gateway_identity=gateway_identity,
            timezone=verification.timezone or schedule.default_timezone,
            morning_time=schedule.default_morning_time,
            evening_time=schedule.default_evening_time,
            content_source=(
                ContentSourceKind.GENERATED if has_prompts else ContentSourceKind.NOTION
            ),
            is_active=bool(has_prompts),
        )
        db.add(recipient)
    else:
        recipient.gateway_identity = gateway_identity
        if has_prompts:
            recipient.content_source = ContentSourceKind.GENERATED
            recipient.is_active = True

    await db.flush()
    return recipient


async def attempt_link(
    db: AsyncSession,
    gateway_identity: str,
    submitted_text: str,
    now: datetime | None = None,
) -> LinkResult:
    """
    Try to link a gateway identity using a code or a trigger phrase.

    Args:
        db: Database session (not committed here)
        gateway_identity: Chat id of the sender
        submitted_text: Message text containing the code, or a greeting
        now: Attempt time (naive UTC), defaults to now

    Returns:
        LinkResult; linked=True on success, otherwise rate-limited or
        invalid-code
    """
    config = get_config().linking
    now = now or utc_now()
    log = logger.bind(gateway_identity=gateway_identity)

    result = await db.execute(
        select(LinkAttempt)
        .where(LinkAttempt.gateway_identity == gateway_identity)
        .execution_options(populate_existing=True)
    )
    counter = result.scalar_one_or_none()

    if counter is not None:
        if counter.locked_until is not None and now < counter.locked_until:
            retry_after = math.ceil((counter.locked_until - now).total_seconds())
            log.bind(retry_after_seconds=retry_after).warning("link_attempt_rate_limited")
            return LinkResult(
                linked=False,
                reason=LinkFailure.RATE_LIMITED,
                retry_after_seconds=retry_after,
            )
        await _reset_counter_if_elapsed(db, counter, now)

    verification = await _find_live_code(db, submitted_text, now)
    if verification is not None and await _consume_code(db, verification.id, gateway_identity, now):
        recipient = await _bind_identity(db, verification, gateway_identity)
        await _clear_counter(db, gateway_identity)
        log.bind(account_id=recipient.account_id).info("gateway_identity_linked")
        return LinkResult(linked=True, account_id=recipient.account_id)

    count = await _record_failed_attempt(db, gateway_identity, now)
    log.bind(attempt_count=count).info("link_attempt_invalid_code")
    return LinkResult(
        linked=False,
        reason=LinkFailure.INVALID_CODE,
        attempts_remaining=max(0, config.max_attempts - count),
    )


async def sweep_linking_state(db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
    """Delete expired unconsumed codes and counters whose window has elapsed."""
    config = get_config().linking
    now = now or utc_now()

    codes = await db.execute(
        delete(VerificationCode).where(
            VerificationCode.consumed_at.is_(None),
            VerificationCode.expires_at <= now,
        )
    )
    counters = await db.execute(
        delete(LinkAttempt).where(
            or_(LinkAttempt.locked_until.is_(None), LinkAttempt.locked_until <= now),
            LinkAttempt.window_started_at
            <= get_cutoff(minutes=config.attempt_window_minutes, now=now),
        )
    )
    return {
        "expired_codes": codes.rowcount or 0,
        "stale_counters": counters.rowcount or 0,
    }
