"""JSON-lines event logging shared by the service, scheduler and web layer."""

from __future__ import annotations

import json
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Optional


class StructuredLogger:
    """Keep the most recent events in memory and mirror them to a log file.

    Web handlers and the pay day scheduler log from different threads, so
    appends and file writes share one lock.
    """

    def __init__(self, *, path: Path | None = None, retain: int = 1000) -> None:
        self.path = path
        self._entries: Deque[dict] = deque(maxlen=retain)
        self._lock = threading.Lock()

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": datetime.now(timezone.utc).isoformat(), "event": event_type, **fields}
        line = json.dumps(entry, default=str)
        with self._lock:
            self._entries.append(entry)
            if self.path:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        with self._lock:
            entries = list(self._entries)
        return tuple(entries[-limit:]) if limit > 0 else ()

    def entries(self, event_type: Optional[str] = None) -> tuple[dict, ...]:
        with self._lock:
            entries = list(self._entries)
        if event_type is None:
            return tuple(entries)
        return tuple(entry for entry in entries if entry["event"] == event_type)


__all__ = ["StructuredLogger"]
