"""
Injectable time for aging, return dates and archive cutoffs.

Services and selectors take a Clock in their constructor; nothing in the
kernel calls ``datetime.now()`` itself.  ``today()`` is the business day in
UTC, which is the calendar batch ages and return dates are counted in.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current, timezone-aware instant."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """UTC calendar day of ``now()``."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Settable clock for tests and demos.

    ``now()`` is stable until ``set_time()``, ``advance()`` or
    ``advance_days()`` moves it, so a batch received "nine days ago" stays
    exactly nine days old for the whole test.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._start = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._start + self._offset

    def set_time(self, time: datetime) -> None:
        self._start = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._offset += timedelta(days=days)
