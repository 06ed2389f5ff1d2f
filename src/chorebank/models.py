"""Domain models used by the ChoreBank package.

The ``as_dict``/``from_dict`` pairs produce the camelCase JSON shapes kept in
persisted collections.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .chores import Weekday
from .exceptions import ValidationError

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _normalize_time(value: Any) -> Optional[str]:
    """Zero-pad ``H:MM`` to ``HH:MM``; unparseable times raise ``ValueError``."""

    if not value:
        return None
    hours, sep, minutes = str(value).strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Invalid pay day time {value!r}.")
    normalized = f"{int(hours):02d}:{minutes}"
    if not _TIME_PATTERN.match(normalized):
        raise ValueError(f"Invalid pay day time {value!r}.")
    return normalized


class Actor(str, Enum):
    """Who is performing an operation."""

    CHILD = "child"
    PARENT = "parent"


class PayDayMode(str, Enum):
    ANYTIME = "anytime"
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class EarningsType(str, Enum):
    CHORE = "chore"
    BONUS = "bonus"


class ToggleOutcome(str, Enum):
    """Result of a completion toggle request."""

    COMPLETED = "completed"
    CLEARED = "cleared"
    APPROVAL_REQUESTED = "approval_requested"
    IGNORED = "ignored"


@dataclass(slots=True)
class PayDayConfig:
    """When a child may (or will automatically) cash out."""

    mode: PayDayMode = PayDayMode.ANYTIME
    day: Optional[Weekday] = None
    time: Optional[str] = None

    def validate(self) -> "PayDayConfig":
        if self.mode in (PayDayMode.MANUAL, PayDayMode.AUTOMATIC) and self.day is None:
            raise ValidationError(f"A pay day is required for {self.mode.value} mode.")
        if self.mode is PayDayMode.AUTOMATIC:
            if not self.time or not _TIME_PATTERN.match(self.time):
                raise ValidationError("Automatic pay day needs a time formatted as HH:MM.")
        return self

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"mode": self.mode.value}
        if self.day is not None:
            payload["day"] = self.day.label
        if self.time:
            payload["time"] = self.time
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PayDayConfig":
        day = data.get("day")
        return cls(
            mode=PayDayMode(data.get("mode", PayDayMode.ANYTIME.value)),
            day=Weekday.from_label(day) if day else None,
            time=_normalize_time(data.get("time")),
        )


@dataclass(slots=True)
class Profile:
    """One child in the household."""

    id: str
    name: str
    image: Optional[str] = None
    pay_day_config: PayDayConfig = field(default_factory=PayDayConfig)
    theme: str = "light"
    parent_view_theme: Optional[str] = None
    has_seen_theme_prompt: bool = False
    show_potential_earnings: bool = False

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "payDayConfig": self.pay_day_config.as_dict(),
            "theme": self.theme,
            "hasSeenThemePrompt": self.has_seen_theme_prompt,
            "showPotentialEarnings": self.show_potential_earnings,
        }
        if self.parent_view_theme:
            payload["parentViewTheme"] = self.parent_view_theme
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Profile":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            image=data.get("image"),
            pay_day_config=PayDayConfig.from_dict(data.get("payDayConfig") or {}),
            theme=data.get("theme") or "light",
            parent_view_theme=data.get("parentViewTheme"),
            has_seen_theme_prompt=bool(data.get("hasSeenThemePrompt", False)),
            show_potential_earnings=bool(data.get("showPotentialEarnings", False)),
        )


@dataclass(slots=True)
class ParentSettings:
    passcode: Optional[str] = None
    theme: str = "light"
    default_chore_value: int = 20
    default_bonus_value: int = 100
    custom_categories: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "passcode": self.passcode,
            "theme": self.theme,
            "defaultChoreValue": self.default_chore_value,
            "defaultBonusValue": self.default_bonus_value,
            "customCategories": list(self.custom_categories),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ParentSettings":
        return cls(
            passcode=data.get("passcode"),
            theme=data.get("theme") or "light",
            default_chore_value=int(data.get("defaultChoreValue", 20)),
            default_bonus_value=int(data.get("defaultBonusValue", 100)),
            custom_categories=list(data.get("customCategories") or []),
        )


@dataclass(slots=True, frozen=True)
class CompletionSnapshot:
    """Point-in-time copy of one (chore, date) pair rolled into a cash-out."""

    chore_id: str
    chore_name: str
    chore_value: int
    date: str
    is_completed: bool = True

    @property
    def key(self) -> tuple[str, str]:
        return (self.chore_id, self.date)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "choreId": self.chore_id,
            "choreName": self.chore_name,
            "choreValue": self.chore_value,
            "date": self.date,
            "isCompleted": self.is_completed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CompletionSnapshot":
        return cls(
            chore_id=str(data["choreId"]),
            chore_name=data.get("choreName", ""),
            chore_value=int(data.get("choreValue", 0)),
            date=data["date"],
            is_completed=bool(data.get("isCompleted", True)),
        )


@dataclass(slots=True)
class EarningsRecord:
    """One cash-out event, pending review or approved into history."""

    id: str
    date: str
    amount: int
    type: EarningsType = EarningsType.CHORE
    completions_snapshot: Optional[List[CompletionSnapshot]] = None
    note: Optional[str] = None
    seen_by_parent: bool = False

    def approved_total(self) -> int:
        return sum(entry.chore_value for entry in self.completions_snapshot or () if entry.is_completed)

    def copy(self) -> "EarningsRecord":
        snapshot = list(self.completions_snapshot) if self.completions_snapshot is not None else None
        return replace(self, completions_snapshot=snapshot)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "date": self.date,
            "amount": self.amount,
            "type": self.type.value,
            "seenByParent": self.seen_by_parent,
        }
        if self.completions_snapshot is not None:
            payload["completionsSnapshot"] = [entry.as_dict() for entry in self.completions_snapshot]
        if self.note:
            payload["note"] = self.note
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EarningsRecord":
        snapshot = data.get("completionsSnapshot")
        return cls(
            id=str(data["id"]),
            date=data["date"],
            amount=int(data.get("amount", 0)),
            type=EarningsType(data.get("type") or EarningsType.CHORE.value),
            completions_snapshot=[CompletionSnapshot.from_dict(item) for item in snapshot]
            if snapshot is not None
            else None,
            note=data.get("note"),
            seen_by_parent=bool(data.get("seenByParent", False)),
        )


@dataclass(slots=True, frozen=True)
class PastChoreApproval:
    """A child's request to count a chore done on an earlier day."""

    id: str
    chore_id: str
    chore_name: str
    date: str

    @classmethod
    def for_chore(cls, chore_id: str, chore_name: str, date: str) -> "PastChoreApproval":
        return cls(id=f"{chore_id}-{date}", chore_id=chore_id, chore_name=chore_name, date=date)

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "choreId": self.chore_id, "choreName": self.chore_name, "date": self.date}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PastChoreApproval":
        return cls(
            id=str(data["id"]),
            chore_id=str(data["choreId"]),
            chore_name=data.get("choreName", ""),
            date=data["date"],
        )


@dataclass(slots=True, frozen=True)
class BonusNotification:
    """A one-time message shown to the child after a bonus award."""

    id: str
    amount: int
    created_at: str
    note: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "amount": self.amount, "createdAt": self.created_at}
        if self.note:
            payload["note"] = self.note
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BonusNotification":
        return cls(
            id=str(data["id"]),
            amount=int(data.get("amount", 0)),
            created_at=data.get("createdAt", ""),
            note=data.get("note") or None,
        )


@dataclass(slots=True)
class EarningsTotals:
    """Approved earnings summed over trailing windows."""

    week: int = 0
    month: int = 0
    three_months: int = 0
    six_months: int = 0
    year: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "week": self.week,
            "month": self.month,
            "threeMonths": self.three_months,
            "sixMonths": self.six_months,
            "year": self.year,
        }


@dataclass(slots=True, frozen=True)
class GraphDataPoint:
    date: str
    total: int


@dataclass(slots=True)
class AuditEvent:
    """Represents an auditable parent override."""

    actor: str
    action: str
    target: str
    timestamp: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "actor": self.actor,
            "action": self.action,
            "target": self.target,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }


__all__ = [
    "Actor",
    "AuditEvent",
    "BonusNotification",
    "CompletionSnapshot",
    "EarningsRecord",
    "EarningsTotals",
    "EarningsType",
    "GraphDataPoint",
    "ParentSettings",
    "PastChoreApproval",
    "PayDayConfig",
    "PayDayMode",
    "Profile",
    "ToggleOutcome",
]
