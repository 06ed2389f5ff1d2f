"""Audit trail of parent overrides to the earnings ledger and settings."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .models import AuditEvent


class AuditLog:
    """Append-only record of who changed what, queryable per profile."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    def record(
        self,
        actor: str,
        action: str,
        target: str,
        *,
        details: Optional[Mapping[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            actor=actor,
            action=action,
            target=target,
            timestamp=(timestamp or datetime.now(timezone.utc)).isoformat(),
            details=dict(details or {}),
        )
        self._events.append(event)
        return event

    def entries(
        self,
        *,
        action: str | None = None,
        target: str | None = None,
        profile: str | None = None,
    ) -> tuple[AuditEvent, ...]:
        """Events oldest first; ``profile`` matches the profile the override touched."""

        return tuple(
            event
            for event in self._events
            if (action is None or event.action == action)
            and (target is None or event.target == target)
            and (profile is None or profile in _profiles_of(event))
        )

    def latest(self) -> AuditEvent | None:
        return self._events[-1] if self._events else None


def _profiles_of(event: AuditEvent) -> tuple[str, ...]:
    if "profile" in event.details:
        return (str(event.details["profile"]),)
    if event.action in ("award_bonus", "delete_profile"):
        return tuple(event.target.split(","))
    return ()


__all__ = ["AuditLog"]
