"""High level service coordinating every ChoreBank workflow.

:class:`ChoreBank` is the single mutation entry point: the web layer, the pay
day scheduler and tests all go through it. Each operation runs inside one
store transaction, logs a structured event and, once the outermost
transaction commits, flushes the store to persistence.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from .admin import AuditLog
from .approvals import PastChoreQueue
from .bonuses import BonusAwardEngine
from .chores import SETTLED_STATES, Chore, weekdays_from_labels
from .clock import Clock, SystemClock, format_date, parse_date
from .events import (
    ALL_CHORES_DONE,
    BONUS_AWARDED,
    CASH_OUT_APPROVED,
    CASH_OUT_REQUESTED,
    CHORE_COMPLETED_TODAY,
    EventDispatcher,
)
from .exceptions import ConsistencyError, PasscodeLockedError, PersistenceError, ValidationError
from .ledger import EarningsLedger, SnapshotKey
from .models import (
    Actor,
    BonusNotification,
    EarningsRecord,
    EarningsTotals,
    GraphDataPoint,
    ParentSettings,
    PastChoreApproval,
    PayDayConfig,
    Profile,
    ToggleOutcome,
)
from .money import AmountLike, format_currency, require_positive, to_cents
from .ops import StructuredLogger
from .payday import PayDayScheduler, cash_out_available
from .projection import project_potential
from .security import PasscodeGuard, passcodes_match, validate_passcode
from .store import Store

PersistCallback = Callable[[Dict[str, Any]], None]

_PROFILE_FIELDS = {
    "name",
    "image",
    "pay_day_config",
    "theme",
    "parent_view_theme",
    "has_seen_theme_prompt",
    "show_potential_earnings",
}
_CHORE_FIELDS = {"name", "value", "days", "category", "icon", "note", "one_off_date"}
_SETTINGS_FIELDS = {"theme", "default_chore_value", "default_bonus_value", "custom_categories"}


def _as_day(day: date | datetime | str) -> date:
    if isinstance(day, str):
        return parse_date(day)
    if isinstance(day, datetime):
        return day.date()
    return day


def _pay_day_config(value: PayDayConfig | Mapping[str, Any] | None) -> PayDayConfig:
    if value is None:
        return PayDayConfig()
    if isinstance(value, PayDayConfig):
        return value.validate()
    try:
        config = PayDayConfig.from_dict(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid pay day configuration: {exc}") from exc
    return config.validate()


class ChoreBank:
    """Manage profiles, chores, completions and the earnings pipeline."""

    __slots__ = (
        "_store",
        "_clock",
        "_logger",
        "_audit_log",
        "_events",
        "_persist",
        "_approvals",
        "_ledger",
        "_bonuses",
        "_scheduler",
        "_passcode_guard",
    )

    def __init__(
        self,
        store: Optional[Store] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None,
        persist: Optional[PersistCallback] = None,
    ) -> None:
        self._store = store or Store()
        self._clock = clock or SystemClock()
        self._logger = logger or StructuredLogger()
        self._audit_log = AuditLog()
        self._events = EventDispatcher()
        self._persist = persist
        self._approvals = PastChoreQueue(self._store)
        self._ledger = EarningsLedger(self._store, self._clock)
        self._bonuses = BonusAwardEngine(self._store, self._clock)
        self._scheduler = PayDayScheduler(self._store, self._clock, self.request_cash_out, logger=self._logger)
        self._passcode_guard = PasscodeGuard()
        self._store.on_commit(self._flush)
        self._report_load()

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------
    @property
    def store(self) -> Store:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def events(self) -> EventDispatcher:
        return self._events

    @property
    def scheduler(self) -> PayDayScheduler:
        return self._scheduler

    def flush(self) -> bool:
        """Write the store through the persistence callback; ``False`` on failure."""

        if self._persist is None:
            return False
        try:
            with self._store.lock:
                self._persist(self._store.serialize())
        except PersistenceError as exc:
            self._logger.log("persistence_error", error=str(exc))
            return False
        return True

    def _flush(self, _store: Store) -> None:
        self.flush()

    def _report_load(self) -> None:
        report = self._store.load_report
        if report is None:
            return
        for step in report.applied:
            self._logger.log("migration_applied", step=step)
        for collection, reason in report.failed.items():
            self._logger.log("collection_reset", collection=collection, reason=reason)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------
    def profiles(self) -> Tuple[Profile, ...]:
        return tuple(self._store.profiles)

    def get_profile(self, profile_id: str) -> Profile:
        return self._store.profile(profile_id)

    def add_profile(
        self,
        name: str,
        *,
        image: Optional[str] = None,
        pay_day_config: PayDayConfig | Mapping[str, Any] | None = None,
        theme: str = "light",
        show_potential_earnings: bool = False,
    ) -> Profile:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Profile name is required.")
        profile = Profile(
            id=uuid4().hex,
            name=name,
            image=image,
            pay_day_config=_pay_day_config(pay_day_config),
            theme=theme,
            show_potential_earnings=show_potential_earnings,
        )
        with self._store.transaction():
            self._store.profiles.append(profile)
        self._logger.log("profile_created", profile=profile.id, name=profile.name)
        return profile

    def update_profile(self, profile_id: str, **changes: Any) -> Profile:
        unknown = set(changes) - _PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}.")
        if "pay_day_config" in changes:
            changes["pay_day_config"] = _pay_day_config(changes["pay_day_config"])
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise ValidationError("Profile name is required.")
        with self._store.transaction():
            profile = self._store.profile(profile_id)
            for key, value in changes.items():
                setattr(profile, key, value)
        self._logger.log("profile_updated", profile=profile_id, fields=sorted(changes))
        return profile

    def delete_profile(self, profile_id: str) -> Profile:
        with self._store.transaction():
            profile = self._store.drop_profile(profile_id)
        self._audit_log.record(Actor.PARENT.value, "delete_profile", profile_id, timestamp=self._clock.now())
        self._logger.log("profile_deleted", profile=profile_id)
        return profile

    # ------------------------------------------------------------------
    # Chores
    # ------------------------------------------------------------------
    def chores_for(self, profile_id: str, day: date | str | None = None) -> List[Chore]:
        """Chores sorted by category then order; only those due on ``day`` if given."""

        self._store.profile(profile_id)
        board = self._store.board(profile_id)
        ordered = board.sorted(custom_categories=self._store.parent_settings.custom_categories)
        if day is None:
            return ordered
        due = _as_day(day)
        return [chore for chore in ordered if chore.is_due(due)]

    def add_chore(
        self,
        profile_id: str,
        name: str,
        *,
        value: AmountLike | None = None,
        days: Sequence[str | int] = (),
        category: Optional[str] = None,
        icon: Optional[str] = None,
        note: Optional[str] = None,
        one_off_date: date | str | None = None,
    ) -> Chore:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Chore name is required.")
        amount = self._store.parent_settings.default_chore_value if value is None else to_cents(value)
        require_positive(amount, allow_zero=True)
        try:
            weekdays = weekdays_from_labels(days)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        one_off = format_date(_as_day(one_off_date)) if one_off_date else None
        with self._store.transaction():
            self._store.profile(profile_id)
            chore = self._store.board(profile_id).add(
                Chore(
                    id=uuid4().hex,
                    name=name,
                    value=amount,
                    days=weekdays,
                    category=(category or "").strip() or None,
                    icon=icon,
                    note=note,
                    created_at=self._clock.now().isoformat(),
                    is_one_off=one_off is not None,
                    one_off_date=one_off,
                )
            )
        self._logger.log("chore_created", profile=profile_id, chore=chore.id, value=chore.value)
        return chore

    def update_chore(self, profile_id: str, chore_id: str, **changes: Any) -> Chore:
        unknown = set(changes) - _CHORE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown chore fields: {', '.join(sorted(unknown))}.")
        if "value" in changes:
            changes["value"] = require_positive(to_cents(changes["value"]), allow_zero=True)
        if "days" in changes:
            try:
                changes["days"] = weekdays_from_labels(changes["days"] or ())
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
        if "category" in changes:
            changes["category"] = (changes["category"] or "").strip() or None
        if "one_off_date" in changes:
            one_off = changes["one_off_date"]
            changes["one_off_date"] = format_date(_as_day(one_off)) if one_off else None
            changes["is_one_off"] = changes["one_off_date"] is not None
        with self._store.transaction():
            self._store.profile(profile_id)
            chore = self._store.board(profile_id).update(chore_id, **changes)
        self._logger.log("chore_updated", profile=profile_id, chore=chore_id, fields=sorted(changes))
        return chore

    def delete_chore(self, profile_id: str, chore_id: str) -> Chore:
        with self._store.transaction():
            self._store.profile(profile_id)
            chore = self._store.board(profile_id).remove(chore_id)
            self._approvals.discard_for_chore(profile_id, chore_id)
        self._logger.log("chore_deleted", profile=profile_id, chore=chore_id)
        return chore

    def reorder_chores(self, profile_id: str, dragged_id: str, target_id: str) -> bool:
        with self._store.transaction():
            self._store.profile(profile_id)
            moved = self._store.board(profile_id).reorder(dragged_id, target_id)
        if moved:
            self._logger.log("chores_reordered", profile=profile_id, chore=dragged_id, target=target_id)
        return moved

    # ------------------------------------------------------------------
    # Completion toggling
    # ------------------------------------------------------------------
    def toggle_completion(
        self,
        profile_id: str,
        chore_id: str,
        day: date | str,
        *,
        actor: Actor = Actor.CHILD,
    ) -> ToggleOutcome:
        """Flip the completion of ``chore_id`` on ``day``.

        Children ticking an earlier day queue a past-chore approval instead.
        Bonus chores and settled dates are left untouched.
        """

        target = _as_day(day)
        key = format_date(target)
        today = self._clock.today()
        try:
            with self._store.transaction():
                self._store.profile(profile_id)
                board = self._store.board(profile_id)
                chore = board.get(chore_id)
                state = chore.state_on(key)
                if chore.is_bonus or state in SETTLED_STATES:
                    return ToggleOutcome.IGNORED
                if state is None and actor is Actor.CHILD and target < today:
                    entry = self._approvals.enqueue(profile_id, chore, key)
                    outcome = ToggleOutcome.APPROVAL_REQUESTED
                elif state is None:
                    chore.mark_completed(key)
                    outcome = ToggleOutcome.COMPLETED
                else:
                    chore.clear(key)
                    outcome = ToggleOutcome.CLEARED
                all_done = target == today and board.all_done_on(today)
                day_total = board.earnings_on(today) if all_done else 0
        except ConsistencyError as exc:
            self._logger.log("toggle_ignored", profile=profile_id, chore=chore_id, date=key, reason=str(exc))
            return ToggleOutcome.IGNORED

        if outcome is ToggleOutcome.APPROVAL_REQUESTED:
            self._logger.log("past_chore_queued", profile=profile_id, chore=chore_id, date=key, approval=entry.id)
            return outcome
        self._logger.log("chore_toggled", profile=profile_id, chore=chore_id, date=key, outcome=outcome.value)
        if outcome is ToggleOutcome.COMPLETED and target == today:
            self._events.dispatch(
                {"event": CHORE_COMPLETED_TODAY, "profile": profile_id, "chore": chore_id, "value": chore.value}
            )
            if all_done:
                self._events.dispatch({"event": ALL_CHORES_DONE, "profile": profile_id, "earnings": day_total})
        return outcome

    # ------------------------------------------------------------------
    # Past chore approvals
    # ------------------------------------------------------------------
    def past_chore_approvals(self, profile_id: str) -> Tuple[PastChoreApproval, ...]:
        self._store.profile(profile_id)
        return self._approvals.pending(profile_id)

    def approve_past_chore(self, profile_id: str, approval_id: str) -> Optional[PastChoreApproval]:
        entry = self._approvals.approve(profile_id, approval_id)
        if entry is not None:
            self._logger.log("past_chore_approved", profile=profile_id, chore=entry.chore_id, date=entry.date)
        return entry

    def dismiss_past_chore(self, profile_id: str, approval_id: str) -> Optional[PastChoreApproval]:
        entry = self._approvals.dismiss(profile_id, approval_id)
        if entry is not None:
            self._logger.log("past_chore_dismissed", profile=profile_id, chore=entry.chore_id, date=entry.date)
        return entry

    def approve_all_past_chores(self, profile_id: str) -> List[PastChoreApproval]:
        approved = self._approvals.approve_all(profile_id)
        if approved:
            self._logger.log("past_chores_approved", profile=profile_id, count=len(approved))
        return approved

    def dismiss_all_past_chores(self, profile_id: str) -> List[PastChoreApproval]:
        dismissed = self._approvals.dismiss_all(profile_id)
        if dismissed:
            self._logger.log("past_chores_dismissed", profile=profile_id, count=len(dismissed))
        return dismissed

    # ------------------------------------------------------------------
    # Earnings ledger
    # ------------------------------------------------------------------
    def current_earnings(self, profile_id: str) -> int:
        self._store.profile(profile_id)
        return self._ledger.current_earnings(profile_id)

    def request_cash_out(self, profile_id: str, *, note: Optional[str] = None) -> Optional[EarningsRecord]:
        self._store.profile(profile_id)
        record = self._ledger.request_cash_out(profile_id, note=note)
        if record is None:
            self._logger.log("cash_out_skipped", profile=profile_id, reason="no earnings")
            return None
        self._logger.log(
            CASH_OUT_REQUESTED,
            profile=profile_id,
            record=record.id,
            amount=record.amount,
            display=format_currency(record.amount),
            entries=len(record.completions_snapshot or ()),
        )
        self._events.dispatch({"event": CASH_OUT_REQUESTED, "profile": profile_id, "amount": record.amount})
        return record

    def review_cash_out(self, record: EarningsRecord, edited_flags: Mapping[SnapshotKey, bool]) -> EarningsRecord:
        return EarningsLedger.review_cash_out(record, edited_flags)

    def approve_reviewed_cash_out(self, profile_id: str, final: EarningsRecord) -> Optional[EarningsRecord]:
        self._store.profile(profile_id)
        record = self._ledger.approve_reviewed_cash_out(profile_id, final)
        if record is None:
            self._logger.log("cash_out_approval_ignored", profile=profile_id, record=final.id)
            return None
        denied = len(final.completions_snapshot or ()) - len(record.completions_snapshot or ())
        self._audit_log.record(
            Actor.PARENT.value,
            "approve_cash_out",
            record.id,
            details={"profile": profile_id, "amount": record.amount, "denied": max(denied, 0)},
            timestamp=self._clock.now(),
        )
        self._logger.log(
            CASH_OUT_APPROVED,
            profile=profile_id,
            record=record.id,
            amount=record.amount,
            display=format_currency(record.amount),
        )
        self._events.dispatch({"event": CASH_OUT_APPROVED, "profile": profile_id, "amount": record.amount})
        return record

    def update_history_amount(self, profile_id: str, record_id: str, amount: AmountLike) -> EarningsRecord:
        self._store.profile(profile_id)
        previous, record = self._ledger.update_history_amount(profile_id, record_id, to_cents(amount))
        self._audit_log.record(
            Actor.PARENT.value,
            "update_history_amount",
            record_id,
            details={"profile": profile_id, "previous": previous, "amount": record.amount},
            timestamp=self._clock.now(),
        )
        self._logger.log("history_amount_updated", profile=profile_id, record=record_id, previous=previous, amount=record.amount)
        return record

    def pending_cash_outs(self, profile_id: str) -> Tuple[EarningsRecord, ...]:
        self._store.profile(profile_id)
        return self._ledger.pending_cash_outs(profile_id)

    def earnings_history(self, profile_id: str) -> Tuple[EarningsRecord, ...]:
        self._store.profile(profile_id)
        return self._ledger.history(profile_id)

    def unseen_cash_outs(self, profile_id: str) -> Tuple[EarningsRecord, ...]:
        self._store.profile(profile_id)
        return self._ledger.unseen_cash_outs(profile_id)

    def mark_cash_outs_seen(self, profile_id: str) -> int:
        self._store.profile(profile_id)
        return self._ledger.mark_cash_outs_seen(profile_id)

    def earnings_totals(self, profile_id: str) -> EarningsTotals:
        self._store.profile(profile_id)
        return self._ledger.earnings_totals(profile_id)

    def earnings_graph(self, profile_id: str, period: str = "week") -> List[GraphDataPoint]:
        self._store.profile(profile_id)
        return self._ledger.earnings_graph(profile_id, period)

    def cash_out_available(self, profile_id: str, *, actor: Actor = Actor.CHILD) -> bool:
        return cash_out_available(self._store.profile(profile_id), self._clock.today(), actor)

    def project_potential_earnings(self, profile_id: str) -> int:
        profile = self._store.profile(profile_id)
        return project_potential(profile, self._store.board(profile_id), self._clock.today())

    # ------------------------------------------------------------------
    # Bonuses
    # ------------------------------------------------------------------
    def award_bonus(self, profile_ids: Sequence[str], amount: AmountLike, note: Optional[str] = None) -> List[Chore]:
        cents = to_cents(amount)
        chores = self._bonuses.award(profile_ids, cents, note)
        targets = list(dict.fromkeys(profile_ids))
        self._audit_log.record(
            Actor.PARENT.value,
            "award_bonus",
            ",".join(targets),
            details={"amount": cents, "note": note},
            timestamp=self._clock.now(),
        )
        self._logger.log(BONUS_AWARDED, profiles=targets, amount=cents, display=format_currency(cents), note=note)
        for profile_id in targets:
            self._events.dispatch({"event": BONUS_AWARDED, "profile": profile_id, "amount": cents})
        return chores

    def pending_bonus_notifications(self, profile_id: str) -> Tuple[BonusNotification, ...]:
        self._store.profile(profile_id)
        return self._bonuses.pending_notifications(profile_id)

    def consume_next_bonus_notification(self, profile_id: str) -> Optional[BonusNotification]:
        self._store.profile(profile_id)
        return self._bonuses.consume_next(profile_id)

    # ------------------------------------------------------------------
    # Parent settings
    # ------------------------------------------------------------------
    def parent_settings(self) -> ParentSettings:
        return self._store.parent_settings

    def update_parent_settings(self, **changes: Any) -> ParentSettings:
        unknown = set(changes) - _SETTINGS_FIELDS
        if unknown:
            raise ValidationError(f"Unknown settings fields: {', '.join(sorted(unknown))}.")
        for key in ("default_chore_value", "default_bonus_value"):
            if key in changes:
                changes[key] = require_positive(to_cents(changes[key]), allow_zero=key == "default_chore_value")
        if "custom_categories" in changes:
            categories = [str(item).strip() for item in changes["custom_categories"] or ()]
            changes["custom_categories"] = list(dict.fromkeys(item for item in categories if item))
        with self._store.transaction():
            settings = self._store.parent_settings
            for key, value in changes.items():
                setattr(settings, key, value)
        self._logger.log("parent_settings_updated", fields=sorted(changes))
        return settings

    def set_passcode(self, passcode: Optional[str]) -> None:
        """Set, change or (with ``None``) clear the parent passcode."""

        if passcode is not None:
            validate_passcode(passcode)
        with self._store.transaction():
            self._store.parent_settings.passcode = passcode
        self._audit_log.record(
            Actor.PARENT.value,
            "set_passcode" if passcode else "clear_passcode",
            "parentSettings",
            timestamp=self._clock.now(),
        )
        self._logger.log("passcode_changed", cleared=passcode is None)

    def has_passcode(self) -> bool:
        return bool(self._store.parent_settings.passcode)

    def verify_passcode(self, candidate: str) -> bool:
        moment = self._clock.now()
        if self._passcode_guard.is_locked(at=moment):
            raise PasscodeLockedError("Too many incorrect passcode attempts; try again later.")
        matched = passcodes_match(self._store.parent_settings.passcode, candidate)
        self._passcode_guard.record_attempt(success=matched, at=moment)
        if not matched:
            self._logger.log("passcode_rejected")
        return matched


__all__ = ["ChoreBank", "PersistCallback"]
