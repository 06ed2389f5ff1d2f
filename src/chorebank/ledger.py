"""Earnings ledger: cash-out requests, parent review and approved history.

Money only moves forward through the ledger. A cash-out request snapshots
every ``completed`` (chore, date) pair into a pending record and flips those
pairs to ``pending_cash_out``. The parent reviews the snapshot, and approval
moves the record into history while the approved pairs become
``cashed_out``. Denied pairs return to "not completed".
"""

from __future__ import annotations

import calendar
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from .chores import CompletionState
from .clock import Clock, format_date, parse_date
from .exceptions import ValidationError
from .models import CompletionSnapshot, EarningsRecord, EarningsTotals, EarningsType, GraphDataPoint
from .money import require_positive
from .store import Store

GRAPH_PERIODS: Tuple[str, ...] = ("week", "month", "3 months", "6 months", "year")

SnapshotKey = Tuple[str, str]


def months_before(day: date, months: int) -> date:
    """Return ``day`` shifted back by calendar months, clamped to month end."""

    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _record_day(record: EarningsRecord) -> date:
    return parse_date(record.date[:10])


class EarningsLedger:
    """Operate on the pending and approved cash-out records of each profile."""

    def __init__(self, store: Store, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def current_earnings(self, profile_id: str) -> int:
        return self._store.board(profile_id).current_earnings()

    def pending_cash_outs(self, profile_id: str) -> Tuple[EarningsRecord, ...]:
        return tuple(record.copy() for record in self._store.pending(profile_id))

    def history(self, profile_id: str) -> Tuple[EarningsRecord, ...]:
        return tuple(record.copy() for record in self._store.history(profile_id))

    def unseen_cash_outs(self, profile_id: str) -> Tuple[EarningsRecord, ...]:
        return tuple(record.copy() for record in self._store.pending(profile_id) if not record.seen_by_parent)

    # ------------------------------------------------------------------
    # Request, review, approve
    # ------------------------------------------------------------------
    def request_cash_out(self, profile_id: str, *, note: Optional[str] = None) -> Optional[EarningsRecord]:
        """Roll every ``completed`` pair into a new pending record.

        Returns ``None`` without touching anything when nothing is owed.
        """

        with self._store.transaction():
            board = self._store.board(profile_id)
            if board.current_earnings() <= 0:
                return None
            pairs = board.completed_pairs()
            snapshot = [
                CompletionSnapshot(chore_id=chore.id, chore_name=chore.name, chore_value=chore.value, date=key)
                for chore, key in pairs
            ]
            record = EarningsRecord(
                id=uuid4().hex,
                date=format_date(self._clock.today()),
                amount=sum(entry.chore_value for entry in snapshot),
                type=EarningsType.CHORE,
                completions_snapshot=snapshot,
                note=note,
            )
            for chore, key in pairs:
                chore.mark_pending_cash_out(key)
            self._store.pending(profile_id).append(record)
            return record.copy()

    @staticmethod
    def review_cash_out(record: EarningsRecord, edited_flags: Mapping[SnapshotKey, bool]) -> EarningsRecord:
        """Apply the parent's approve/deny flags to a copy of ``record``.

        ``edited_flags`` maps ``(chore_id, date)`` to the reviewed value of
        ``isCompleted``. Nothing is persisted.
        """

        if record.completions_snapshot is None:
            return record.copy()
        snapshot = [
            replace(entry, is_completed=bool(edited_flags.get(entry.key, entry.is_completed)))
            for entry in record.completions_snapshot
        ]
        reviewed = replace(record, completions_snapshot=snapshot)
        reviewed.amount = reviewed.approved_total()
        return reviewed

    def approve_reviewed_cash_out(self, profile_id: str, final: EarningsRecord) -> Optional[EarningsRecord]:
        """Move a reviewed request from pending into history.

        Unknown or already approved ids are a no-op returning ``None``.
        """

        with self._store.transaction():
            pending = self._store.pending(profile_id)
            original = next((record for record in pending if record.id == final.id), None)
            if original is None:
                return None

            if original.completions_snapshot is None:
                approved_record = replace(original.copy(), seen_by_parent=True, note=final.note or original.note)
            else:
                known = {entry.key for entry in original.completions_snapshot}
                flags: Dict[SnapshotKey, bool] = {}
                for entry in final.completions_snapshot or ():
                    if entry.key not in known:
                        raise ValidationError(
                            f"Entry {entry.chore_id} on {entry.date} is not part of cash-out '{original.id}'."
                        )
                    flags[entry.key] = entry.is_completed
                approved: List[CompletionSnapshot] = []
                board = self._store.board(profile_id)
                for entry in original.completions_snapshot:
                    keep = flags.get(entry.key, entry.is_completed)
                    if keep:
                        approved.append(replace(entry, is_completed=True))
                    chore = board.find(entry.chore_id)
                    if chore is None or chore.state_on(entry.date) is not CompletionState.PENDING_CASH_OUT:
                        continue
                    if keep:
                        chore.mark_cashed_out(entry.date)
                    else:
                        chore.clear(entry.date)
                approved_record = replace(
                    original.copy(),
                    completions_snapshot=approved,
                    amount=sum(entry.chore_value for entry in approved),
                    note=final.note or original.note,
                    seen_by_parent=True,
                )

            pending.remove(original)
            self._store.history(profile_id).append(approved_record)
            return approved_record.copy()

    def update_history_amount(self, profile_id: str, record_id: str, amount: int) -> Tuple[int, EarningsRecord]:
        """Overwrite the amount of an approved record; returns ``(previous, record)``."""

        amount = require_positive(amount, allow_zero=True)
        with self._store.transaction():
            for index, record in enumerate(self._store.history(profile_id)):
                if record.id == record_id:
                    previous = record.amount
                    updated = replace(record.copy(), amount=amount)
                    self._store.history(profile_id)[index] = updated
                    return previous, updated.copy()
        raise ValidationError(f"Unknown earnings record '{record_id}'.")

    def mark_cash_outs_seen(self, profile_id: str) -> int:
        with self._store.transaction():
            pending = self._store.pending(profile_id)
            marked = 0
            for index, record in enumerate(pending):
                if not record.seen_by_parent:
                    pending[index] = replace(record, seen_by_parent=True)
                    marked += 1
            return marked

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def earnings_totals(self, profile_id: str) -> EarningsTotals:
        today = self._clock.today()
        start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)
        windows = {
            "week": start_of_week,
            "month": today.replace(day=1),
            "three_months": months_before(today, 3),
            "six_months": months_before(today, 6),
            "year": today.replace(month=1, day=1),
        }
        totals = EarningsTotals()
        for record in self._store.history(profile_id):
            day = _record_day(record)
            for name, start in windows.items():
                if day >= start:
                    setattr(totals, name, getattr(totals, name) + record.amount)
        return totals

    def earnings_graph(self, profile_id: str, period: str = "week") -> List[GraphDataPoint]:
        """Daily approved totals since the start of ``period``, oldest first."""

        today = self._clock.today()
        key = period.strip().lower()
        if key == "week":
            start = today - timedelta(days=7)
        elif key == "month":
            start = months_before(today, 1)
        elif key == "3 months":
            start = months_before(today, 3)
        elif key == "6 months":
            start = months_before(today, 6)
        elif key == "year":
            start = months_before(today, 12)
        else:
            raise ValidationError(f"Unknown graph period {period!r}; expected one of {', '.join(GRAPH_PERIODS)}.")
        daily: Dict[str, int] = {}
        for record in self._store.history(profile_id):
            day = _record_day(record)
            if day >= start:
                daily[format_date(day)] = daily.get(format_date(day), 0) + record.amount
        return [GraphDataPoint(date=key, total=total) for key, total in sorted(daily.items())]


__all__ = ["EarningsLedger", "GRAPH_PERIODS", "months_before"]
