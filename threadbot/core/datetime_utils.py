"""Centralized datetime utilities for consistent timezone handling.

All persisted timestamps are naive UTC (SQLAlchemy models use naive UTC).
Recipient-facing calculations happen on aware datetimes in the recipient's
IANA timezone.

Usage:
    from threadbot.core.datetime_utils import get_expiry, to_local, utc_now

    expires_at = get_expiry(minutes=10)

    local_now = to_local(utc_now(), recipient.timezone)
"""

from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from threadbot.core.logging import get_logger

logger = get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def get_cutoff(
    minutes: int = 0, hours: int = 0, days: int = 0, now: datetime | None = None
) -> datetime:
    """Get past cutoff datetime as naive UTC, for retention and window queries."""
    delta = timedelta(minutes=minutes, hours=hours, days=days)
    return (now or utc_now()) - delta


def get_expiry(
    minutes: int = 0, hours: int = 0, days: int = 0, now: datetime | None = None
) -> datetime:
    """Get future expiry datetime as naive UTC."""
    delta = timedelta(minutes=minutes, hours=hours, days=days)
    return (now or utc_now()) + delta


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Naive input is assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def to_aware_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


# =============================================================================
# Per-recipient timezone utilities
# =============================================================================


def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is a valid IANA identifier."""
    try:
        ZoneInfo(tz_name)
        return True
    except (KeyError, ValueError):
        return False


def resolve_timezone(tz_name: str) -> ZoneInfo:
    """Return the ZoneInfo for tz_name, falling back to UTC when invalid."""
    try:
        return ZoneInfo(tz_name)
    except (KeyError, ValueError):
        logger.bind(timezone=tz_name).warning("invalid_timezone_fallback_utc")
        return ZoneInfo("UTC")


def to_local(now_utc: datetime, tz_name: str) -> datetime:
    """Convert a UTC instant (naive or aware) to aware local civil time."""
    return to_aware_utc(now_utc).astimezone(resolve_timezone(tz_name))


def parse_slot_time(value: str) -> time:
    """Parse an "HH:MM" slot time.

    Raises:
        ValueError: if the value is not a valid 24h time
    """
    parts = value.split(":")
    if len(parts) != 2:
        raise ValueError(f"Time must be in HH:MM format: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid hour or minute: {value!r}")
    return time(hour=hour, minute=minute)


def normalize_slot_time(value: str) -> str:
    """Parse and re-render a slot time with leading zeros ("9:5" -> "09:05")."""
    parsed = parse_slot_time(value)
    return f"{parsed.hour:02d}:{parsed.minute:02d}"


def minute_of_day(value: time | datetime) -> int:
    """Minutes since local midnight."""
    return value.hour * 60 + value.minute


def ring_distance(a: int, b: int) -> int:
    """Shortest distance between two minute-of-day values on a 1440-minute ring."""
    diff = abs(a - b) % MINUTES_PER_DAY
    return min(diff, MINUTES_PER_DAY - diff)
