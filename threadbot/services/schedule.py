"""Per-recipient schedule evaluation.

A slot is due when the recipient's local time-of-day lies within the
tolerance of the configured slot time. Distances are measured on the
1440-minute day ring so that a slot at 00:00 is matched by a tick at 23:58.
"""

from datetime import date, datetime, timedelta

from threadbot.config import get_config
from threadbot.core.datetime_utils import (
    minute_of_day,
    parse_slot_time,
    ring_distance,
    to_local,
)
from threadbot.core.logging import get_logger
from threadbot.models.recipient import Slot

logger = get_logger(__name__)


def is_due(
    scheduled_local_time: str,
    timezone: str,
    slot: Slot | str,
    now_utc: datetime,
    tolerance_minutes: int | None = None,
) -> bool:
    """
    Check whether a slot scheduled at a local "HH:MM" is due at now_utc.

    Args:
        scheduled_local_time: Slot time in the recipient's timezone
        timezone: IANA timezone of the recipient (invalid names fall back to UTC)
        slot: Slot being evaluated
        now_utc: Invocation time (naive UTC or aware)
        tolerance_minutes: Allowed distance in minutes, defaults to half the
            configured polling interval

    Returns:
        True if |local minute-of-day - scheduled minute-of-day| on the day ring
        is within the tolerance
    """
    if tolerance_minutes is None:
        tolerance_minutes = get_config().schedule.tolerance_minutes

    try:
        scheduled = parse_slot_time(scheduled_local_time)
    except ValueError:
        logger.bind(slot=str(slot), scheduled=scheduled_local_time).warning("invalid_slot_time")
        return False

    local_now = to_local(now_utc, timezone)
    distance = ring_distance(minute_of_day(local_now), minute_of_day(scheduled))
    return distance <= tolerance_minutes


def slot_date(scheduled_local_time: str, timezone: str, now_utc: datetime) -> date:
    """
    Recipient-local calendar date of the slot occurrence nearest to now_utc.

    A tick at 23:58 for a slot at 00:00 belongs to the next day's slot, the
    same one a tick at 00:02 sees, so both map to one idempotency key.
    """
    scheduled = parse_slot_time(scheduled_local_time)
    local_now = to_local(now_utc, timezone)
    today = local_now.date()

    candidates = [
        datetime.combine(today + timedelta(days=offset), scheduled, tzinfo=local_now.tzinfo)
        for offset in (-1, 0, 1)
    ]
    nearest = min(candidates, key=lambda c: abs(c - local_now))
    return nearest.date()
