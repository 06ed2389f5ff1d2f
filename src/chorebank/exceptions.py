"""Custom exception hierarchy for the ChoreBank package."""

from __future__ import annotations


class ChoreBankError(Exception):
    """Base class for all ChoreBank specific errors."""


class ValidationError(ChoreBankError, ValueError):
    """Raised when an operation is rejected before any state is touched."""


class ProfileNotFoundError(ValidationError):
    """Raised when a profile lookup fails."""


class ChoreNotFoundError(ValidationError):
    """Raised when a chore lookup fails."""


class ConsistencyError(ChoreBankError):
    """Raised when an operation no longer applies to the current state.

    The service layer treats these as benign no-ops since repeated taps from
    the UI are expected.
    """


class InvalidTransitionError(ConsistencyError):
    """Raised when a completion state change is not an allowed edge."""


class PersistenceError(ChoreBankError):
    """Raised when the key-value storage cannot be read or written."""


class MigrationError(ChoreBankError):
    """Raised when a persisted collection cannot be upgraded."""


class PasscodeLockedError(ChoreBankError):
    """Raised when passcode entry is locked after repeated failures."""
