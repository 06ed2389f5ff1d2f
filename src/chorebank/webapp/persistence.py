"""Persistence and SQLModel definitions for the ChoreBank web API.

Each store collection lives in one ``MetaKV`` row as a JSON document wrapped
in its ``{"schemaVersion", "data"}`` envelope.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..exceptions import PersistenceError
from ..migrations import COLLECTIONS
from ..ops import StructuredLogger
from .config import SQLITE_FILE_NAME

CORRUPTED_BACKUP_MARKER = "_corrupted_backup_"

# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
engine = create_engine(
    f"sqlite:///{SQLITE_FILE_NAME}",
    echo=False,
    connect_args={"check_same_thread": False},
)

# Ensure fresh metadata when re-importing in test contexts.
SQLModel.metadata.clear()


class MetaKV(SQLModel, table=True):
    k: str = Field(primary_key=True)
    v: str


def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)


class MetaDAO:
    @staticmethod
    def get(session: Session, key: str) -> Optional[str]:
        row = session.get(MetaKV, key)
        return row.v if row else None

    @staticmethod
    def set(session: Session, key: str, value: str) -> None:
        row = session.get(MetaKV, key)
        if row:
            row.v = value
            session.add(row)
        else:
            session.add(MetaKV(k=key, v=value))

    @staticmethod
    def keys(session: Session) -> List[str]:
        return list(session.exec(select(MetaKV.k)).all())


def backup_key(key: str, moment: datetime) -> str:
    return f"{key}{CORRUPTED_BACKUP_MARKER}{int(moment.timestamp() * 1000)}"


# ---------------------------------------------------------------------------
# Blob storage
# ---------------------------------------------------------------------------
class KeyValueStorage:
    """Read and write the store blob, one ``MetaKV`` row per collection."""

    def __init__(
        self,
        db_engine=None,
        *,
        logger: Optional[StructuredLogger] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._engine = db_engine if db_engine is not None else engine
        self._logger = logger or StructuredLogger()
        self._now = now

    def load_blob(self) -> Dict[str, Any]:
        """Return every decodable collection; undecodable rows are backed up."""

        blob: Dict[str, Any] = {}
        try:
            with Session(self._engine) as session:
                for name in COLLECTIONS:
                    raw = MetaDAO.get(session, name)
                    if raw is None:
                        continue
                    try:
                        blob[name] = json.loads(raw)
                    except json.JSONDecodeError as exc:
                        self._backup(session, name, raw, f"invalid JSON: {exc.msg}")
                session.commit()
        except SQLAlchemyError as exc:
            self._logger.log("persistence_error", operation="load", error=str(exc))
            raise PersistenceError(f"Could not load stored data: {exc}") from exc
        return blob

    def backup_collections(self, blob: Mapping[str, Any], failed: Mapping[str, str]) -> List[str]:
        """Back up the raw value of each collection named in ``failed``."""

        keys: List[str] = []
        if not failed:
            return keys
        try:
            with Session(self._engine) as session:
                for name, reason in failed.items():
                    if name in blob:
                        keys.append(self._backup(session, name, json.dumps(blob[name]), reason))
                session.commit()
        except SQLAlchemyError as exc:
            self._logger.log("persistence_error", operation="backup", error=str(exc))
            raise PersistenceError(f"Could not back up stored data: {exc}") from exc
        return keys

    def save_blob(self, blob: Mapping[str, Any]) -> None:
        try:
            with Session(self._engine) as session:
                for name, value in blob.items():
                    MetaDAO.set(session, name, json.dumps(value, separators=(",", ":")))
                session.commit()
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            self._logger.log("persistence_error", operation="save", error=str(exc))
            raise PersistenceError(f"Could not save data: {exc}") from exc

    def backups(self) -> List[str]:
        with Session(self._engine) as session:
            return sorted(key for key in MetaDAO.keys(session) if CORRUPTED_BACKUP_MARKER in key)

    def _backup(self, session: Session, name: str, raw: str, reason: str) -> str:
        key = backup_key(name, self._now())
        MetaDAO.set(session, key, raw)
        row = session.get(MetaKV, name)
        if row is not None:
            session.delete(row)
        self._logger.log("collection_corrupted", collection=name, backup=key, reason=reason)
        return key


__all__ = [
    "CORRUPTED_BACKUP_MARKER",
    "KeyValueStorage",
    "MetaDAO",
    "MetaKV",
    "backup_key",
    "create_db_and_tables",
    "engine",
]
