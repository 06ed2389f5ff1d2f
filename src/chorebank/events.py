"""Synchronous domain event dispatch."""

from __future__ import annotations

from typing import Callable, Dict

CHORE_COMPLETED_TODAY = "chore_completed_today"
ALL_CHORES_DONE = "all_chores_done"
CASH_OUT_REQUESTED = "cash_out_requested"
CASH_OUT_APPROVED = "cash_out_approved"
BONUS_AWARDED = "bonus_awarded"

Listener = Callable[[Dict[str, object]], None]


class EventDispatcher:
    """Broadcast domain events to registered listeners in registration order."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def register(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unregister(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def dispatch(self, event: Dict[str, object]) -> None:
        for listener in list(self._listeners):
            listener(event)


__all__ = [
    "ALL_CHORES_DONE",
    "BONUS_AWARDED",
    "CASH_OUT_APPROVED",
    "CASH_OUT_REQUESTED",
    "CHORE_COMPLETED_TODAY",
    "EventDispatcher",
    "Listener",
]
