"""In-memory entity store with atomic transactions and versioned persistence."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from . import migrations as m
from .chores import Chore, ChoreBoard
from .exceptions import ProfileNotFoundError
from .models import BonusNotification, EarningsRecord, ParentSettings, PastChoreApproval, Profile

CommitListener = Callable[["Store"], None]


@dataclass
class StoreState:
    """Every persisted collection, keyed by profile id where applicable."""

    profiles: List[Profile] = field(default_factory=list)
    chores: Dict[str, List[Chore]] = field(default_factory=dict)
    earnings_history: Dict[str, List[EarningsRecord]] = field(default_factory=dict)
    pending_cash_outs: Dict[str, List[EarningsRecord]] = field(default_factory=dict)
    past_chore_approvals: Dict[str, List[PastChoreApproval]] = field(default_factory=dict)
    bonus_notifications: Dict[str, List[BonusNotification]] = field(default_factory=dict)
    last_auto_cash_out: Dict[str, str] = field(default_factory=dict)
    parent_settings: ParentSettings = field(default_factory=ParentSettings)


def _by_profile(raw: Mapping[str, Any], factory: Callable[[Mapping[str, Any]], Any]) -> Dict[str, list]:
    return {str(profile_id): [factory(item) for item in items or []] for profile_id, items in raw.items()}


def _dump_by_profile(collection: Mapping[str, list]) -> Dict[str, list]:
    return {profile_id: [item.as_dict() for item in items] for profile_id, items in collection.items()}


_DECODERS: Dict[str, Callable[[Any], Any]] = {
    m.PROFILES: lambda raw: [Profile.from_dict(item) for item in raw],
    m.CHORES: lambda raw: _by_profile(raw, Chore.from_dict),
    m.EARNINGS_HISTORY: lambda raw: _by_profile(raw, EarningsRecord.from_dict),
    m.PENDING_CASH_OUTS: lambda raw: _by_profile(raw, EarningsRecord.from_dict),
    m.PAST_CHORE_APPROVALS: lambda raw: _by_profile(raw, PastChoreApproval.from_dict),
    m.BONUS_NOTIFICATIONS: lambda raw: _by_profile(raw, BonusNotification.from_dict),
    m.LAST_AUTO_CASH_OUT: lambda raw: {str(key): str(value) for key, value in raw.items()},
    m.PARENT_SETTINGS: ParentSettings.from_dict,
}

_ATTRIBUTES: Dict[str, str] = {
    m.PROFILES: "profiles",
    m.CHORES: "chores",
    m.EARNINGS_HISTORY: "earnings_history",
    m.PENDING_CASH_OUTS: "pending_cash_outs",
    m.PAST_CHORE_APPROVALS: "past_chore_approvals",
    m.BONUS_NOTIFICATIONS: "bonus_notifications",
    m.LAST_AUTO_CASH_OUT: "last_auto_cash_out",
    m.PARENT_SETTINGS: "parent_settings",
}


class Store:
    """Hold the application state and serialise every write.

    All mutations happen inside :meth:`transaction`. The lock is re-entrant so
    service operations may compose; only the outermost block snapshots state
    for rollback and notifies commit listeners.
    """

    def __init__(self, state: Optional[StoreState] = None) -> None:
        self._state = state or StoreState()
        self._lock = threading.RLock()
        self._depth = 0
        self._listeners: List[CommitListener] = []
        self.load_report: Optional[m.MigrationResult] = None

    # ------------------------------------------------------------------
    # Loading and serialisation
    # ------------------------------------------------------------------
    @classmethod
    def load(cls, blob: Optional[Mapping[str, Any]] = None) -> "Store":
        """Build a store from a persisted blob, migrating it as needed.

        Collections that cannot be migrated or decoded fall back to their
        defaults; their names are listed in ``store.load_report.failed``.
        """

        result = m.migrate(blob or {})
        state = StoreState()
        for name in m.COLLECTIONS:
            try:
                value = _DECODERS[name](result.data[name])
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                result.failed[name] = f"undecodable: {exc}"
                value = _DECODERS[name](m.default_value(name))
            setattr(state, _ATTRIBUTES[name], value)
        store = cls(state)
        store.load_report = result
        for chores in state.chores.values():
            board = ChoreBoard(chores)
            for category in board.categories():
                board.normalize_order(category)
        return store

    def serialize(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            state = self._state
            payloads: Dict[str, Any] = {
                m.PROFILES: [profile.as_dict() for profile in state.profiles],
                m.CHORES: _dump_by_profile(state.chores),
                m.EARNINGS_HISTORY: _dump_by_profile(state.earnings_history),
                m.PENDING_CASH_OUTS: _dump_by_profile(state.pending_cash_outs),
                m.PAST_CHORE_APPROVALS: _dump_by_profile(state.past_chore_approvals),
                m.BONUS_NOTIFICATIONS: _dump_by_profile(state.bonus_notifications),
                m.LAST_AUTO_CASH_OUT: dict(state.last_auto_cash_out),
                m.PARENT_SETTINGS: state.parent_settings.as_dict(),
            }
            return {name: m.wrap(name, payloads[name]) for name in m.COLLECTIONS}

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[StoreState]:
        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._state) if outermost else None
            self._depth += 1
            try:
                yield self._state
            except BaseException:
                if snapshot is not None:
                    self._state = snapshot
                raise
            finally:
                self._depth -= 1
            # listeners run under the lock so flushes land in commit order
            if outermost:
                for listener in list(self._listeners):
                    listener(self)

    def on_commit(self, listener: CommitListener) -> None:
        self._listeners.append(listener)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def state(self) -> StoreState:
        return self._state

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def profiles(self) -> List[Profile]:
        return self._state.profiles

    @property
    def parent_settings(self) -> ParentSettings:
        return self._state.parent_settings

    @parent_settings.setter
    def parent_settings(self, settings: ParentSettings) -> None:
        self._state.parent_settings = settings

    @property
    def last_auto_cash_out(self) -> Dict[str, str]:
        return self._state.last_auto_cash_out

    def find_profile(self, profile_id: str) -> Optional[Profile]:
        for profile in self._state.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def profile(self, profile_id: str) -> Profile:
        profile = self.find_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Unknown profile '{profile_id}'.")
        return profile

    def board(self, profile_id: str) -> ChoreBoard:
        return ChoreBoard(self._state.chores.setdefault(profile_id, []))

    def history(self, profile_id: str) -> List[EarningsRecord]:
        return self._state.earnings_history.setdefault(profile_id, [])

    def pending(self, profile_id: str) -> List[EarningsRecord]:
        return self._state.pending_cash_outs.setdefault(profile_id, [])

    def approvals(self, profile_id: str) -> List[PastChoreApproval]:
        return self._state.past_chore_approvals.setdefault(profile_id, [])

    def notifications(self, profile_id: str) -> List[BonusNotification]:
        return self._state.bonus_notifications.setdefault(profile_id, [])

    def drop_profile(self, profile_id: str) -> Profile:
        """Remove a profile and every collection keyed by it."""

        profile = self.profile(profile_id)
        state = self._state
        state.profiles.remove(profile)
        for collection in (
            state.chores,
            state.earnings_history,
            state.pending_cash_outs,
            state.past_chore_approvals,
            state.bonus_notifications,
            state.last_auto_cash_out,
        ):
            collection.pop(profile_id, None)
        return profile


__all__ = ["CommitListener", "Store", "StoreState"]
