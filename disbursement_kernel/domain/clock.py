"""
Clock -- injectable source of "now".

Workflows stamp signed_at, executed_at, completion_date, released_at and
every audit event's occurred_at.  They take a Clock in their constructor
and never read the system time themselves, so tests can pin every
timestamp a transition writes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


class Clock(ABC):
    """Returns timezone-aware datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a given instant until moved with ``advance()``.

    Repeated ``now()`` calls return the same value, so two transitions in
    one test share a timestamp unless the test advances in between.
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = start or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta = timedelta(seconds=1)) -> datetime:
        self._current += delta
        return self._current
