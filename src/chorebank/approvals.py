"""Queue of past-due completions awaiting a parent's decision."""

from __future__ import annotations

from typing import List, Optional, Tuple

from .chores import Chore
from .models import PastChoreApproval
from .store import Store


class PastChoreQueue:
    """FIFO queue per profile, unique by ``(chore_id, date)``.

    A child ticking a chore for an earlier day lands here instead of touching
    the chore. Approving sets the completion to ``completed``; dismissing
    discards the request.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    def pending(self, profile_id: str) -> Tuple[PastChoreApproval, ...]:
        return tuple(self._store.approvals(profile_id))

    def enqueue(self, profile_id: str, chore: Chore, date_key: str) -> PastChoreApproval:
        with self._store.transaction():
            queue = self._store.approvals(profile_id)
            for existing in queue:
                if existing.chore_id == chore.id and existing.date == date_key:
                    return existing
            entry = PastChoreApproval.for_chore(chore.id, chore.name, date_key)
            queue.append(entry)
            return entry

    def approve(self, profile_id: str, approval_id: str) -> Optional[PastChoreApproval]:
        """Approve one request; returns ``None`` when it no longer applies."""

        with self._store.transaction():
            entry = self._take(profile_id, approval_id)
            if entry is None:
                return None
            chore = self._store.board(profile_id).find(entry.chore_id)
            if chore is None:
                return None
            if chore.state_on(entry.date) is None:
                chore.mark_completed(entry.date)
            return entry

    def dismiss(self, profile_id: str, approval_id: str) -> Optional[PastChoreApproval]:
        with self._store.transaction():
            return self._take(profile_id, approval_id)

    def approve_all(self, profile_id: str) -> List[PastChoreApproval]:
        with self._store.transaction():
            approved = []
            for entry in list(self._store.approvals(profile_id)):
                if self.approve(profile_id, entry.id) is not None:
                    approved.append(entry)
            return approved

    def dismiss_all(self, profile_id: str) -> List[PastChoreApproval]:
        with self._store.transaction():
            queue = self._store.approvals(profile_id)
            dismissed = list(queue)
            queue.clear()
            return dismissed

    def discard_for_chore(self, profile_id: str, chore_id: str) -> int:
        with self._store.transaction():
            queue = self._store.approvals(profile_id)
            kept = [entry for entry in queue if entry.chore_id != chore_id]
            removed = len(queue) - len(kept)
            queue[:] = kept
            return removed

    def _take(self, profile_id: str, approval_id: str) -> Optional[PastChoreApproval]:
        queue = self._store.approvals(profile_id)
        for entry in queue:
            if entry.id == approval_id:
                queue.remove(entry)
                return entry
        return None


__all__ = ["PastChoreQueue"]
