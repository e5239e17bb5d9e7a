"""Injectable time sources.

Every expiry check and past-date guard reads time from a ``Clock`` so the
whole engine can be driven deterministically in tests.
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current instant and the tenant-local calendar day."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...

    def today(self) -> date:
        """Return the current calendar day in the tenant's timezone."""
        ...


class SystemClock:
    """Wall-clock time."""

    def __init__(self, tz: tzinfo | str = timezone.utc):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime, tz: tzinfo | str = timezone.utc):
        if now.tzinfo is None:
            raise ValueError("FrozenClock requires an aware datetime")
        self._now = now.astimezone(timezone.utc)
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.astimezone(self.tz).date()

    def advance(self, **delta: float) -> datetime:
        """Move time forward, e.g. ``clock.advance(seconds=2)``."""
        self._now = self._now + timedelta(**delta)
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now.astimezone(timezone.utc)
