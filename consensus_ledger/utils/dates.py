"""Deadline helpers."""

from datetime import date, timedelta


def add_business_days(days: int, start: date) -> date:
    """Date N business days after start, skipping Saturdays and Sundays."""
    result = start
    added = 0
    while added < days:
        result += timedelta(days=1)
        if result.weekday() < 5:
            added += 1
    return result


def default_deadline(start: date, business_days: int = 5) -> date:
    return add_business_days(business_days, start)


def days_until(deadline: date, on: date) -> int:
    """Whole days from `on` until the deadline; negative once it has passed."""
    return (deadline - on).days
