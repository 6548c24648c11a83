# File: src/smartpark/domain/clock.py
"""Clock abstraction passed into every lifecycle transition."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional


class Clock(ABC):
    """Source of the current time"""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    """Wall clock time (naive local datetimes)"""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """
    Manually driven clock for tests and replays.

    Time only moves when set() or advance() is called.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 9, 0, 0)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, **kwargs) -> datetime:
        """Move forward by timedelta keyword arguments, e.g. advance(minutes=90)"""
        self._now = self._now + timedelta(**kwargs)
        return self._now
