"""Pay day scheduling: automatic cash-outs and cash-out button gating."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Callable, List, Optional

from .chores import Weekday
from .clock import Clock, format_date, format_time
from .models import Actor, EarningsRecord, PayDayMode, Profile
from .ops import StructuredLogger
from .store import Store

CashOutHandler = Callable[[str], Optional[EarningsRecord]]

DEFAULT_TICK_SECONDS = 60.0


def cash_out_available(profile: Profile, today: date, actor: Actor = Actor.CHILD) -> bool:
    """Whether the cash-out action should be offered to ``actor`` today."""

    if actor is Actor.PARENT:
        return True
    config = profile.pay_day_config
    if config.mode is PayDayMode.MANUAL:
        return config.day is not None and Weekday.from_date(today) is config.day
    if config.mode is PayDayMode.AUTOMATIC:
        return False
    return True


class PayDayScheduler:
    """Fire automatic cash-outs at most once per profile per day.

    A profile is due when its mode is automatic, today is its pay day and the
    configured ``HH:MM`` has been reached. Any tick later that same day still
    fires, not only the tick at exactly ``HH:MM``, so a process that was down
    at pay time catches up before midnight. ``lastAutoCashOut`` is written in
    the same transaction as the cash-out request, so a restart can never pay
    twice. Pay days missed entirely while the process was down are skipped.
    """

    def __init__(
        self,
        store: Store,
        clock: Clock,
        cash_out: CashOutHandler,
        *,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._cash_out = cash_out
        self._logger = logger or StructuredLogger()

    def due_profiles(self) -> List[Profile]:
        moment = self._clock.now()
        today_key = format_date(moment)
        weekday = Weekday.from_date(moment)
        current_time = format_time(moment)
        due = []
        for profile in self._store.profiles:
            config = profile.pay_day_config
            if config.mode is not PayDayMode.AUTOMATIC or config.day is not weekday or not config.time:
                continue
            if current_time < config.time:
                continue
            if self._store.last_auto_cash_out.get(profile.id) == today_key:
                continue
            due.append(profile)
        return due

    def tick(self) -> List[EarningsRecord]:
        """Run one scheduler pass; returns the cash-out records it created."""

        created: List[EarningsRecord] = []
        for profile in self.due_profiles():
            today_key = format_date(self._clock.today())
            with self._store.transaction():
                if self._store.last_auto_cash_out.get(profile.id) == today_key:
                    continue
                record = self._cash_out(profile.id)
                self._store.last_auto_cash_out[profile.id] = today_key
            self._logger.log(
                "auto_cash_out",
                profile=profile.id,
                date=today_key,
                amount=record.amount if record else 0,
                record=record.id if record else None,
            )
            if record is not None:
                created.append(record)
        return created

    async def run(self, stop_event: asyncio.Event, *, interval: float = DEFAULT_TICK_SECONDS) -> None:
        """Call :meth:`tick` every ``interval`` seconds until ``stop_event`` is set."""

        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.tick)
            except Exception as exc:
                self._logger.log("payday_tick_failed", error=str(exc), error_type=type(exc).__name__)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue


__all__ = ["CashOutHandler", "DEFAULT_TICK_SECONDS", "PayDayScheduler", "cash_out_available"]
