"""ChoreBank package for tracking chores and paying children for them."""

from .admin import AuditLog
from .approvals import PastChoreQueue
from .bonuses import BonusAwardEngine
from .chores import Chore, ChoreBoard, ChoreType, CompletionState, Weekday
from .clock import Clock, ManualClock, SystemClock
from .events import EventDispatcher
from .exceptions import (
    ChoreBankError,
    ChoreNotFoundError,
    ConsistencyError,
    InvalidTransitionError,
    MigrationError,
    PasscodeLockedError,
    PersistenceError,
    ProfileNotFoundError,
    ValidationError,
)
from .ledger import EarningsLedger
from .models import (
    Actor,
    BonusNotification,
    CompletionSnapshot,
    EarningsRecord,
    EarningsTotals,
    EarningsType,
    GraphDataPoint,
    ParentSettings,
    PastChoreApproval,
    PayDayConfig,
    PayDayMode,
    Profile,
    ToggleOutcome,
)
from .ops import StructuredLogger
from .payday import PayDayScheduler, cash_out_available
from .projection import project_potential
from .service import ChoreBank
from .store import Store

__all__ = [
    "Actor",
    "AuditLog",
    "BonusAwardEngine",
    "BonusNotification",
    "Chore",
    "ChoreBank",
    "ChoreBankError",
    "ChoreBoard",
    "ChoreNotFoundError",
    "ChoreType",
    "Clock",
    "CompletionSnapshot",
    "CompletionState",
    "ConsistencyError",
    "EarningsLedger",
    "EarningsRecord",
    "EarningsTotals",
    "EarningsType",
    "EventDispatcher",
    "GraphDataPoint",
    "InvalidTransitionError",
    "ManualClock",
    "MigrationError",
    "ParentSettings",
    "PasscodeLockedError",
    "PastChoreApproval",
    "PastChoreQueue",
    "PayDayConfig",
    "PayDayMode",
    "PayDayScheduler",
    "PersistenceError",
    "Profile",
    "ProfileNotFoundError",
    "StructuredLogger",
    "Store",
    "SystemClock",
    "ToggleOutcome",
    "ValidationError",
    "Weekday",
    "cash_out_available",
    "project_potential",
]
