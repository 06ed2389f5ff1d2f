"""Versioned migration of persisted collections.

Every collection is persisted as ``{"schemaVersion": n, "data": ...}``. A bare
value without that envelope is a legacy (version 0) payload. Migrations form a
single ordered chain; each step upgrades one collection to one version and is
a pure function of the collection data plus a read-only view of the blob.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Tuple

from .exceptions import MigrationError

PROFILES = "profiles"
CHORES = "choresByProfile"
EARNINGS_HISTORY = "earningsHistoryByProfile"
PENDING_CASH_OUTS = "pendingCashOutsByProfile"
PAST_CHORE_APPROVALS = "pastChoreApprovalsByProfile"
BONUS_NOTIFICATIONS = "pendingBonusNotificationsByProfile"
LAST_AUTO_CASH_OUT = "lastAutoCashOut"
PARENT_SETTINGS = "parentSettings"

COLLECTIONS: Tuple[str, ...] = (
    PROFILES,
    CHORES,
    EARNINGS_HISTORY,
    PENDING_CASH_OUTS,
    PAST_CHORE_APPROVALS,
    BONUS_NOTIFICATIONS,
    LAST_AUTO_CASH_OUT,
    PARENT_SETTINGS,
)

DEFAULT_PARENT_SETTINGS: Dict[str, Any] = {
    "passcode": None,
    "theme": "light",
    "defaultChoreValue": 20,
    "defaultBonusValue": 100,
    "customCategories": [],
}

_COMPLETION_VALUES = {"completed", "pending_cash_out", "cashed_out"}
_LEGACY_PAYDAY_FLAG = "isPaydayCashOutOnly"


def default_value(collection: str) -> Any:
    if collection == PROFILES:
        return []
    if collection == PARENT_SETTINGS:
        return copy.deepcopy(DEFAULT_PARENT_SETTINGS)
    return {}


@dataclass(frozen=True)
class Migration:
    collection: str
    version: int
    description: str
    apply: Callable[[Any, Mapping[str, Any]], Any]


@dataclass
class MigrationResult:
    data: Dict[str, Any]
    versions: Dict[str, int]
    applied: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------
def _profiles_pay_day_config(profiles: Any, blob: Mapping[str, Any]) -> List[Dict[str, Any]]:
    if not isinstance(profiles, list):
        raise MigrationError("profiles must be a list")
    settings = blob.get(PARENT_SETTINGS)
    flag = settings.get(_LEGACY_PAYDAY_FLAG) if isinstance(settings, Mapping) else None
    migrated: List[Dict[str, Any]] = []
    for entry in profiles:
        profile = dict(entry)
        legacy_day = profile.pop("payDay", None)
        if not profile.get("payDayConfig"):
            if flag is True or (flag is None and legacy_day):
                profile["payDayConfig"] = {"mode": "manual", "day": legacy_day or "Sat"}
            else:
                profile["payDayConfig"] = {"mode": "anytime"}
        profile.setdefault("theme", "light")
        profile.setdefault("hasSeenThemePrompt", False)
        profile.setdefault("showPotentialEarnings", False)
        migrated.append(profile)
    return migrated


def _parent_settings_defaults(settings: Any, blob: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(settings, Mapping):
        raise MigrationError("parentSettings must be a mapping")
    migrated = dict(settings)
    migrated.pop(_LEGACY_PAYDAY_FLAG, None)
    for key, value in DEFAULT_PARENT_SETTINGS.items():
        migrated.setdefault(key, copy.deepcopy(value))
    return migrated


def _map_chores(chores_by_profile: Any, transform: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]]) -> Dict[str, Any]:
    if not isinstance(chores_by_profile, Mapping):
        raise MigrationError("choresByProfile must be a mapping")
    return {profile_id: transform([dict(chore) for chore in chores or []]) for profile_id, chores in chores_by_profile.items()}


def _chores_completion_states(chores_by_profile: Any, blob: Mapping[str, Any]) -> Dict[str, Any]:
    def convert(chores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for chore in chores:
            completions: Dict[str, str] = {}
            for key, value in dict(chore.get("completions") or {}).items():
                if value is True:
                    completions[key] = "completed"
                elif value in _COMPLETION_VALUES:
                    completions[key] = value
            chore["completions"] = completions
        return chores

    return _map_chores(chores_by_profile, convert)


def _chores_order(chores_by_profile: Any, blob: Mapping[str, Any]) -> Dict[str, Any]:
    def assign(chores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        next_order: Dict[str, int] = {}
        for chore in chores:
            if isinstance(chore.get("order"), int):
                category = chore.get("category") or ""
                next_order[category] = max(next_order.get(category, 0), chore["order"] + 1)
        for chore in chores:
            if not isinstance(chore.get("order"), int):
                category = chore.get("category") or ""
                chore["order"] = next_order.get(category, 0)
                next_order[category] = chore["order"] + 1
        return chores

    return _map_chores(chores_by_profile, assign)


def _chores_type(chores_by_profile: Any, blob: Mapping[str, Any]) -> Dict[str, Any]:
    def fill(chores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for chore in chores:
            chore.setdefault("type", "chore")
            if not chore.get("type"):
                chore["type"] = "chore"
            chore.setdefault("days", [])
        return chores

    return _map_chores(chores_by_profile, fill)


MIGRATIONS: Tuple[Migration, ...] = (
    # Must precede the parentSettings step, which drops the legacy flag it reads.
    Migration(PROFILES, 1, "flat payDay to payDayConfig", _profiles_pay_day_config),
    Migration(PARENT_SETTINGS, 1, "drop isPaydayCashOutOnly, fill defaults", _parent_settings_defaults),
    Migration(CHORES, 1, "boolean completions to completion states", _chores_completion_states),
    Migration(CHORES, 2, "assign missing order indexes", _chores_order),
    Migration(CHORES, 3, "default chore type", _chores_type),
)

CURRENT_VERSIONS: Dict[str, int] = {name: 1 for name in COLLECTIONS}
for _step in MIGRATIONS:
    CURRENT_VERSIONS[_step.collection] = max(CURRENT_VERSIONS[_step.collection], _step.version)


# ---------------------------------------------------------------------------
# Envelope helpers
# ---------------------------------------------------------------------------
def unwrap(raw: Any) -> Tuple[int, Any]:
    """Return ``(schemaVersion, data)`` for a persisted value."""

    if isinstance(raw, Mapping) and set(raw) == {"schemaVersion", "data"} and isinstance(raw["schemaVersion"], int):
        return raw["schemaVersion"], raw["data"]
    return 0, raw


def wrap(collection: str, data: Any) -> Dict[str, Any]:
    return {"schemaVersion": CURRENT_VERSIONS[collection], "data": data}


def migrate(blob: Mapping[str, Any]) -> MigrationResult:
    """Upgrade every collection in ``blob`` to its current schema version.

    Missing collections take their default value. A collection whose step
    fails, or that was written by a newer schema, is reset to its default and
    reported in :attr:`MigrationResult.failed` so the caller can back it up.
    """

    data: Dict[str, Any] = {}
    versions: Dict[str, int] = {}
    result = MigrationResult(data=data, versions=versions)
    for name in COLLECTIONS:
        raw = blob.get(name)
        if raw is None:
            data[name] = default_value(name)
            versions[name] = CURRENT_VERSIONS[name]
            continue
        version, payload = unwrap(raw)
        if version > CURRENT_VERSIONS[name]:
            result.failed[name] = f"schemaVersion {version} is newer than supported {CURRENT_VERSIONS[name]}"
            data[name] = default_value(name)
            versions[name] = CURRENT_VERSIONS[name]
            continue
        data[name] = copy.deepcopy(payload)
        versions[name] = version

    for step in MIGRATIONS:
        if step.collection in result.failed or versions[step.collection] >= step.version:
            continue
        view = copy.deepcopy(data)
        try:
            data[step.collection] = step.apply(copy.deepcopy(data[step.collection]), view)
        except (MigrationError, AttributeError, KeyError, TypeError, ValueError) as exc:
            result.failed[step.collection] = f"{step.description}: {exc}"
            data[step.collection] = default_value(step.collection)
            versions[step.collection] = CURRENT_VERSIONS[step.collection]
            continue
        versions[step.collection] = step.version
        result.applied.append(f"{step.collection}@v{step.version}: {step.description}")

    for name in COLLECTIONS:
        versions[name] = max(versions[name], CURRENT_VERSIONS[name])
    return result


__all__ = [
    "BONUS_NOTIFICATIONS",
    "CHORES",
    "COLLECTIONS",
    "CURRENT_VERSIONS",
    "EARNINGS_HISTORY",
    "LAST_AUTO_CASH_OUT",
    "MIGRATIONS",
    "Migration",
    "MigrationResult",
    "PARENT_SETTINGS",
    "PAST_CHORE_APPROVALS",
    "PENDING_CASH_OUTS",
    "PROFILES",
    "default_value",
    "migrate",
    "unwrap",
    "wrap",
]
