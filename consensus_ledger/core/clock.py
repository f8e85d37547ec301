"""Clock helpers so components can be driven by a fixed time in tests."""

from collections.abc import Callable
from datetime import date, datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today(clock: Clock) -> date:
    """Calendar date (UTC) for the given clock."""
    now = clock()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()
