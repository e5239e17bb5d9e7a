"""Calendar helpers for stays expressed as ``[check_in, check_out)``."""

from collections.abc import Iterable
from datetime import date, timedelta


def stay_nights(check_in: date, check_out: date) -> list[date]:
    """Nights occupied by a stay. The check-out date itself is not a night."""
    return [check_in + timedelta(days=offset) for offset in range((check_out - check_in).days)]


def date_span(start: date, end: date, days_of_week: Iterable[int] | None = None) -> list[date]:
    """Every date in ``[start, end]``, optionally limited to ISO weekdays (1 = Monday)."""
    weekdays = set(days_of_week) if days_of_week is not None else None
    days = []
    current = start
    while current <= end:
        if weekdays is None or current.isoweekday() in weekdays:
            days.append(current)
        current += timedelta(days=1)
    return days
