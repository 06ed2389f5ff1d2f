"""Clock abstractions so wall-clock dependent logic can be driven by tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, Optional


def format_date(moment: date | datetime) -> str:
    """Return the local ``YYYY-MM-DD`` key used for completion dates."""

    if isinstance(moment, datetime):
        moment = moment.date()
    return moment.isoformat()


def parse_date(value: str) -> date:
    return date.fromisoformat(value)


def format_time(moment: datetime) -> str:
    """Return ``HH:MM`` at minute resolution."""

    return f"{moment.hour:02d}:{moment.minute:02d}"


class Clock:
    """Source of the current local time."""

    def now(self) -> datetime:  # pragma: no cover - interface
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Clock backed by a time provider, ``datetime.now`` by default."""

    def __init__(self, provider: Optional[Callable[[], datetime]] = None) -> None:
        self._provider = provider or datetime.now

    def now(self) -> datetime:
        return self._provider()


class ManualClock(Clock):
    """Clock frozen at a given moment until explicitly moved."""

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = moment

    def advance(self, *, days: int = 0, hours: int = 0, minutes: int = 0, seconds: int = 0) -> datetime:
        self._moment = self._moment + timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        return self._moment


__all__ = ["Clock", "ManualClock", "SystemClock", "format_date", "format_time", "parse_date"]
