"""Configuration constants for the ChoreBank web API."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


SESSION_SECRET = os.environ.get("SESSION_SECRET", "change-this-session-secret")
SQLITE_FILE_NAME = os.environ.get("CHOREBANK_SQLITE", "chorebank.db")
LOG_PATH = os.environ.get("CHOREBANK_LOG_PATH") or None
PAYDAY_TICK_SECONDS = float(os.environ.get("PAYDAY_TICK_SECONDS", "60"))
SCHEDULER_ENABLED = _flag("CHOREBANK_SCHEDULER", True)
ROLE_SESSION_KEY = "role"

__all__ = [
    "LOG_PATH",
    "PAYDAY_TICK_SECONDS",
    "ROLE_SESSION_KEY",
    "SCHEDULER_ENABLED",
    "SESSION_SECRET",
    "SQLITE_FILE_NAME",
]
