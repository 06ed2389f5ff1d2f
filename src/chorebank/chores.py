"""Chore definitions, the per-date completion state machine and board ordering."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .clock import format_date
from .exceptions import ChoreNotFoundError, InvalidTransitionError

BONUS_ORDER_BASE = 10000
UNCATEGORIZED_RANK = 99
CUSTOM_CATEGORY_RANK = 100

DEFAULT_CHORE_CATEGORIES: tuple[str, ...] = (
    "Morning Routine",
    "Bedroom",
    "Kitchen",
    "Bathroom",
    "Laundry",
    "Outdoor",
    "Pets",
    "Homework",
    "Evening Routine",
)


class Weekday(IntEnum):
    """Enum representing days of the week for scheduling."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_date(cls, moment: date) -> "Weekday":
        return cls(moment.weekday())

    @classmethod
    def from_label(cls, label: str) -> "Weekday":
        """Parse the three letter labels used in persisted data (``"Mon"``)."""

        key = (label or "").strip()[:3].lower()
        for day in cls:
            if day.label.lower() == key:
                return day
        raise ValueError(f"Unknown weekday {label!r}.")

    @property
    def label(self) -> str:
        return self.name[:3].title()


class CompletionState(str, Enum):
    """Lifecycle of a single (chore, date) pair. Absence means not completed."""

    COMPLETED = "completed"
    PENDING_CASH_OUT = "pending_cash_out"
    CASHED_OUT = "cashed_out"


class ChoreType(str, Enum):
    CHORE = "chore"
    BONUS = "bonus"


# (from, to) edges; ``None`` stands for "no state".
ALLOWED_TRANSITIONS: frozenset[tuple[Optional[CompletionState], Optional[CompletionState]]] = frozenset(
    {
        (None, CompletionState.COMPLETED),
        (CompletionState.COMPLETED, None),
        (CompletionState.COMPLETED, CompletionState.PENDING_CASH_OUT),
        (CompletionState.PENDING_CASH_OUT, CompletionState.CASHED_OUT),
        # A cash-out entry the parent denied during review is forfeited.
        (CompletionState.PENDING_CASH_OUT, None),
    }
)

SETTLED_STATES = frozenset({CompletionState.PENDING_CASH_OUT, CompletionState.CASHED_OUT})


@dataclass(slots=True)
class Chore:
    """A chore assigned to one profile, with its per-date completion states."""

    id: str
    name: str
    value: int
    days: frozenset[Weekday] = field(default_factory=frozenset)
    completions: Dict[str, CompletionState] = field(default_factory=dict)
    category: Optional[str] = None
    order: int = 0
    type: ChoreType = ChoreType.CHORE
    icon: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[str] = None
    is_one_off: bool = False
    one_off_date: Optional[str] = None

    def __post_init__(self) -> None:
        self.value = int(self.value)
        self.days = frozenset(Weekday(day) for day in self.days)

    @property
    def is_bonus(self) -> bool:
        return self.type is ChoreType.BONUS

    def is_due(self, day: date) -> bool:
        if self.is_one_off and self.one_off_date:
            return self.one_off_date == format_date(day)
        return Weekday.from_date(day) in self.days

    def state_on(self, day: date | str) -> Optional[CompletionState]:
        key = day if isinstance(day, str) else format_date(day)
        return self.completions.get(key)

    def dates_in(self, state: CompletionState) -> List[str]:
        return sorted(key for key, current in self.completions.items() if current is state)

    def earned_value(self) -> int:
        """Value of completions not yet rolled into a cash-out request."""

        return self.value * len(self.dates_in(CompletionState.COMPLETED))

    # ------------------------------------------------------------------
    # State machine edges
    # ------------------------------------------------------------------
    def transition(self, key: str, target: Optional[CompletionState]) -> None:
        current = self.completions.get(key)
        if (current, target) not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(
                f"Chore '{self.id}' on {key}: cannot move from "
                f"{current.value if current else 'none'} to {target.value if target else 'none'}."
            )
        if target is None:
            del self.completions[key]
        else:
            self.completions[key] = target

    def mark_completed(self, key: str) -> None:
        self.transition(key, CompletionState.COMPLETED)

    def clear(self, key: str) -> None:
        self.transition(key, None)

    def mark_pending_cash_out(self, key: str) -> None:
        self.transition(key, CompletionState.PENDING_CASH_OUT)

    def mark_cashed_out(self, key: str) -> None:
        self.transition(key, CompletionState.CASHED_OUT)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "value": self.value,
            "days": [day.label for day in sorted(self.days)],
            "completions": {key: state.value for key, state in sorted(self.completions.items())},
            "icon": self.icon,
            "category": self.category,
            "order": self.order,
            "type": self.type.value,
        }
        if self.note:
            payload["note"] = self.note
        if self.created_at:
            payload["createdAt"] = self.created_at
        if self.is_one_off:
            payload["isOneOff"] = True
            payload["oneOffDate"] = self.one_off_date
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Chore":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            value=int(data.get("value", 0)),
            days=weekdays_from_labels(data.get("days") or ()),
            completions={
                str(key): CompletionState(state)
                for key, state in dict(data.get("completions") or {}).items()
            },
            category=data.get("category") or None,
            order=int(data.get("order", 0)),
            type=ChoreType(data.get("type") or ChoreType.CHORE.value),
            icon=data.get("icon"),
            note=data.get("note"),
            created_at=data.get("createdAt"),
            is_one_off=bool(data.get("isOneOff", False)),
            one_off_date=data.get("oneOffDate"),
        )


def category_rank(category: Optional[str], custom_categories: Sequence[str] = ()) -> int:
    if not category:
        return UNCATEGORIZED_RANK
    if category in DEFAULT_CHORE_CATEGORIES:
        return DEFAULT_CHORE_CATEGORIES.index(category)
    if category in custom_categories:
        return CUSTOM_CATEGORY_RANK + list(custom_categories).index(category)
    return CUSTOM_CATEGORY_RANK


class ChoreBoard:
    """Manage the chore list of a single profile.

    The board wraps the list held by the store, so mutations made inside a
    store transaction are visible to the store directly.
    """

    def __init__(self, chores: List[Chore]) -> None:
        self._chores = chores

    def __iter__(self):
        return iter(self._chores)

    def __len__(self) -> int:
        return len(self._chores)

    def chores(self) -> Sequence[Chore]:
        return tuple(self._chores)

    def get(self, chore_id: str) -> Chore:
        for chore in self._chores:
            if chore.id == chore_id:
                return chore
        raise ChoreNotFoundError(f"Unknown chore '{chore_id}'.")

    def find(self, chore_id: str) -> Optional[Chore]:
        for chore in self._chores:
            if chore.id == chore_id:
                return chore
        return None

    def partition(self, category: Optional[str]) -> List[Chore]:
        """Regular chores in ``category`` sorted by their order index."""

        return sorted(
            (chore for chore in self._chores if chore.category == category and not chore.is_bonus),
            key=lambda chore: chore.order,
        )

    def add(self, chore: Chore) -> Chore:
        if self.find(chore.id) is not None:
            raise ValueError(f"Chore '{chore.id}' already exists.")
        if chore.is_bonus:
            chore.order = BONUS_ORDER_BASE + len(self._chores)
        else:
            chore.order = len(self.partition(chore.category))
        self._chores.append(chore)
        return chore

    def update(self, chore_id: str, **changes: object) -> Chore:
        chore = self.get(chore_id)
        previous_category = chore.category
        updated = replace(chore, **changes)
        if updated.category != previous_category and not updated.is_bonus:
            updated.order = len(self.partition(updated.category))
        index = self._chores.index(chore)
        self._chores[index] = updated
        if updated.category != previous_category:
            self.normalize_order(previous_category)
        return updated

    def remove(self, chore_id: str) -> Chore:
        chore = self.get(chore_id)
        self._chores.remove(chore)
        if not chore.is_bonus:
            self.normalize_order(chore.category)
        return chore

    def reorder(self, dragged_id: str, target_id: str) -> bool:
        """Move ``dragged_id`` into the slot held by ``target_id``.

        Only chores sharing a category can be reordered; returns ``False``
        when the move does not apply.
        """

        dragged = self.find(dragged_id)
        target = self.find(target_id)
        if dragged is None or target is None or dragged is target:
            return False
        if dragged.category != target.category or dragged.is_bonus or target.is_bonus:
            return False
        ordered = self.partition(dragged.category)
        ordered.remove(dragged)
        ordered.insert(ordered.index(target), dragged)
        for index, chore in enumerate(ordered):
            chore.order = index
        return True

    def normalize_order(self, category: Optional[str] = None) -> None:
        for index, chore in enumerate(self.partition(category)):
            chore.order = index

    def categories(self) -> List[Optional[str]]:
        seen: List[Optional[str]] = []
        for chore in self._chores:
            if chore.category not in seen:
                seen.append(chore.category)
        return seen

    def sorted(self, *, custom_categories: Sequence[str] = ()) -> List[Chore]:
        return sorted(
            self._chores,
            key=lambda chore: (category_rank(chore.category, custom_categories), chore.category or "", chore.order),
        )

    def due_on(self, day: date) -> List[Chore]:
        return [chore for chore in self._chores if chore.is_due(day)]

    def current_earnings(self) -> int:
        return sum(chore.earned_value() for chore in self._chores)

    def completed_pairs(self) -> List[tuple[Chore, str]]:
        pairs: List[tuple[Chore, str]] = []
        for chore in self._chores:
            for key in chore.dates_in(CompletionState.COMPLETED):
                pairs.append((chore, key))
        return pairs

    def all_done_on(self, day: date) -> bool:
        due = [chore for chore in self.due_on(day) if not chore.is_bonus]
        return bool(due) and all(chore.state_on(day) is not None for chore in due)

    def earnings_on(self, day: date) -> int:
        return sum(chore.value for chore in self.due_on(day) if chore.state_on(day) is not None)


def weekdays_from_labels(labels: Iterable[str | int | Weekday]) -> frozenset[Weekday]:
    days = set()
    for label in labels:
        if isinstance(label, str):
            days.add(Weekday.from_label(label))
        else:
            days.add(Weekday(label))
    return frozenset(days)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "BONUS_ORDER_BASE",
    "Chore",
    "ChoreBoard",
    "ChoreType",
    "CompletionState",
    "DEFAULT_CHORE_CATEGORIES",
    "SETTLED_STATES",
    "Weekday",
    "category_rank",
    "weekdays_from_labels",
]
