"""Bonus awards and the notification queue shown to children."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import uuid4

from .chores import Chore, ChoreType, CompletionState, Weekday
from .clock import Clock, format_date
from .exceptions import ValidationError
from .models import BonusNotification
from .money import require_positive
from .store import Store

DEFAULT_BONUS_NAME = "Bonus"


class BonusAwardEngine:
    """Credit one-off bonus chores to one or more profiles."""

    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def award(self, profile_ids: Sequence[str], amount: int, note: Optional[str] = None) -> List[Chore]:
        """Create a completed bonus chore for every profile in ``profile_ids``.

        Validation happens before anything is written, so a bad amount or an
        unknown profile leaves every profile untouched.
        """

        require_positive(amount)
        if not profile_ids:
            raise ValidationError("Select at least one profile for the bonus.")
        ids = list(dict.fromkeys(profile_ids))
        for profile_id in ids:
            self._store.profile(profile_id)

        moment: datetime = self._clock.now()
        today = format_date(moment)
        note = (note or "").strip() or None
        awarded: List[Chore] = []
        with self._store.transaction():
            for profile_id in ids:
                board = self._store.board(profile_id)
                chore = Chore(
                    id=uuid4().hex,
                    name=note or DEFAULT_BONUS_NAME,
                    value=amount,
                    days=frozenset({Weekday.from_date(moment)}),
                    completions={today: CompletionState.COMPLETED},
                    type=ChoreType.BONUS,
                    icon="🎁",
                    note=note,
                    created_at=moment.isoformat(),
                    is_one_off=True,
                    one_off_date=today,
                )
                board.add(chore)
                self._store.notifications(profile_id).append(
                    BonusNotification(id=uuid4().hex, amount=amount, created_at=moment.isoformat(), note=note)
                )
                awarded.append(chore)
        return awarded

    def pending_notifications(self, profile_id: str) -> tuple[BonusNotification, ...]:
        return tuple(self._store.notifications(profile_id))

    def consume_next(self, profile_id: str) -> Optional[BonusNotification]:
        with self._store.transaction():
            queue = self._store.notifications(profile_id)
            return queue.pop(0) if queue else None


__all__ = ["BonusAwardEngine", "DEFAULT_BONUS_NAME"]
