"""Potential earnings between today and the next pay day."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable

from .chores import Chore, CompletionState, Weekday
from .models import PayDayMode, Profile


def days_until_payday(today: date, pay_day: Weekday) -> int:
    """Days from ``today`` to ``pay_day``; a pay day today yields ``0``."""

    return (int(pay_day) - today.weekday() + 7) % 7


def project_potential(profile: Profile, chores: Iterable[Chore], today: date) -> int:
    """Earned-but-unclaimed cents plus the value still achievable by pay day.

    Dates already holding any completion state are skipped so nothing is
    counted twice. Returns ``0`` for profiles that opted out or have no fixed
    pay day.
    """

    config = profile.pay_day_config
    if not profile.show_potential_earnings or config.mode is PayDayMode.ANYTIME or config.day is None:
        return 0
    chores = list(chores)
    earned = sum(chore.value * len(chore.dates_in(CompletionState.COMPLETED)) for chore in chores)
    upcoming = 0
    for offset in range(days_until_payday(today, config.day) + 1):
        day = today + timedelta(days=offset)
        for chore in chores:
            if chore.is_due(day) and chore.state_on(day) is None:
                upcoming += chore.value
    return earned + upcoming


__all__ = ["days_until_payday", "project_potential"]
