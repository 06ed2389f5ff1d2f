"""Parent passcode validation and brute-force lockout."""

from __future__ import annotations

import hmac
import re
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Optional

from .exceptions import ValidationError

_PASSCODE_PATTERN = re.compile(r"^\d{4}$")


def validate_passcode(passcode: str) -> str:
    if not isinstance(passcode, str) or not _PASSCODE_PATTERN.match(passcode):
        raise ValidationError("Passcode must be exactly 4 digits.")
    return passcode


def passcodes_match(expected: Optional[str], candidate: str) -> bool:
    """Compare in constant time; no passcode configured means everything matches."""

    if not expected:
        return True
    return hmac.compare_digest(expected.encode("utf-8"), (candidate or "").encode("utf-8"))


class PasscodeGuard:
    """Lock passcode entry after repeated failures within a time window."""

    def __init__(self, *, max_attempts: int = 5, lockout_minutes: int = 15) -> None:
        self._max_attempts = max_attempts
        self._lockout_window = timedelta(minutes=lockout_minutes)
        self._failures: Deque[datetime] = deque()

    def record_attempt(self, *, success: bool, at: datetime) -> bool:
        """Record an attempt and return whether further attempts are allowed."""

        self._prune(at)
        if success:
            self._failures.clear()
            return True
        self._failures.append(at)
        return len(self._failures) < self._max_attempts

    def is_locked(self, *, at: datetime) -> bool:
        self._prune(at)
        return len(self._failures) >= self._max_attempts

    def _prune(self, now: datetime) -> None:
        while self._failures and now - self._failures[0] > self._lockout_window:
            self._failures.popleft()


__all__ = ["PasscodeGuard", "passcodes_match", "validate_passcode"]
