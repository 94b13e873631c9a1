from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from toggl_digest.m1 import db as db_mod
from toggl_digest.m1.clock import Clock, utc_now
from toggl_digest.m1.db import StorageError

logger = logging.getLogger(__name__)

# Degenerate range used by metadata scopes, which are not date-scoped.
WHOLE_HISTORY = "*"


class Scope(str, Enum):
    WORKSPACES = "workspaces"
    PROJECTS = "projects"
    CLIENTS = "clients"
    TIME_ENTRIES = "time_entries"


@dataclass(frozen=True)
class CacheKey:
    identity: str
    workspace_id: int | None
    scope: Scope
    range_start: date | None = None
    range_end: date | None = None

    @classmethod
    def metadata(cls, identity: str, scope: Scope, workspace_id: int | None = None) -> CacheKey:
        return cls(identity=identity, workspace_id=workspace_id, scope=scope)

    @classmethod
    def time_entries(cls, identity: str, workspace_id: int, start: date, end: date) -> CacheKey:
        if end < start:
            raise ValueError("range end is before range start")
        return cls(
            identity=identity,
            workspace_id=workspace_id,
            scope=Scope.TIME_ENTRIES,
            range_start=start,
            range_end=end,
        )

    @property
    def start_token(self) -> str:
        return self.range_start.isoformat() if self.range_start else WHOLE_HISTORY

    @property
    def end_token(self) -> str:
        return self.range_end.isoformat() if self.range_end else WHOLE_HISTORY

    def as_str(self) -> str:
        ws = "" if self.workspace_id is None else str(self.workspace_id)
        return "|".join(
            [self.identity, ws, self.scope.value, self.start_token, self.end_token]
        )


@dataclass(frozen=True)
class CacheRecord:
    key: CacheKey
    payload: Any
    fetched_at: datetime


class CacheStore:
    """Persistent key -> (payload, fetched_at) map backed by SQLite.

    Every write replaces the whole record for a key inside one transaction,
    so a record is either absent or exactly one successful fetch.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Clock = utc_now,
        diagnostics: list[str] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock
        self._lock = threading.RLock()
        self.diagnostics: list[str] = list(diagnostics or [])

    @classmethod
    def open(cls, db_path: Path, *, clock: Clock = utc_now) -> CacheStore:
        """Open the cache at `db_path`; corrupt storage yields an empty cache."""
        try:
            conn = db_mod.connect(db_path, check_same_thread=False)
        except (sqlite3.Error, OSError) as e:
            diag = f"cache {db_path} is unreadable ({e}); continuing with an empty cache"
            logger.warning(diag)
            conn = _reopen_fresh(db_path)
            return cls(conn, clock=clock, diagnostics=[diag])
        return cls(conn, clock=clock)

    def get(self, key: CacheKey) -> CacheRecord | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT payload_json, fetched_at FROM cache_records WHERE cache_key=?",
                    (key.as_str(),),
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"cache read failed: {e}") from e

        if row is None:
            return None
        try:
            payload = json.loads(row["payload_json"])
            fetched_at = datetime.fromisoformat(row["fetched_at"])
        except (TypeError, ValueError) as e:
            raise StorageError(f"corrupt cache record {key.as_str()}: {e}") from e
        return CacheRecord(key=key, payload=payload, fetched_at=fetched_at)

    def put(self, key: CacheKey, payload: Any, fetched_at: datetime | None = None) -> CacheRecord:
        fetched_at = fetched_at or self._clock()
        payload_json = json.dumps(payload, ensure_ascii=False, sort_keys=True)
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT OR REPLACE INTO cache_records(
                            cache_key, identity, workspace_id, scope,
                            range_start, range_end, payload_json, fetched_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            key.as_str(),
                            key.identity,
                            key.workspace_id,
                            key.scope.value,
                            key.start_token,
                            key.end_token,
                            payload_json,
                            fetched_at.isoformat(),
                        ),
                    )
            except sqlite3.Error as e:
                raise StorageError(f"cache write failed: {e}") from e
        logger.debug("cache put %s", key.as_str())
        return CacheRecord(key=key, payload=json.loads(payload_json), fetched_at=fetched_at)

    def invalidate(self, key: CacheKey) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        "DELETE FROM cache_records WHERE cache_key=?", (key.as_str(),)
                    )
            except sqlite3.Error as e:
                raise StorageError(f"cache invalidate failed: {e}") from e

    def clear(self, identity: str) -> int:
        """Drop every record cached for `identity`. Returns the number removed."""
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(
                        "DELETE FROM cache_records WHERE identity=?", (identity,)
                    )
            except sqlite3.Error as e:
                raise StorageError(f"cache clear failed: {e}") from e
        return int(cur.rowcount)

    def overlapping_time_entries(
        self,
        identity: str,
        workspace_id: int,
        start: date,
        end: date,
    ) -> list[CacheRecord]:
        """Time-entry records whose date range intersects [start, end], oldest first.

        Records fetched at the same instant put narrower ranges last.
        """
        with self._lock:
            try:
                rows = self._conn.execute(
                    """
                    SELECT range_start, range_end, payload_json, fetched_at
                    FROM cache_records
                    WHERE identity=? AND workspace_id=? AND scope=?
                      AND range_start <= ? AND range_end >= ?
                    ORDER BY fetched_at ASC,
                      julianday(range_end) - julianday(range_start) DESC
                    """,
                    (
                        identity,
                        workspace_id,
                        Scope.TIME_ENTRIES.value,
                        end.isoformat(),
                        start.isoformat(),
                    ),
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"cache read failed: {e}") from e

        out: list[CacheRecord] = []
        for r in rows:
            try:
                key = CacheKey.time_entries(
                    identity,
                    workspace_id,
                    date.fromisoformat(r["range_start"]),
                    date.fromisoformat(r["range_end"]),
                )
                out.append(
                    CacheRecord(
                        key=key,
                        payload=json.loads(r["payload_json"]),
                        fetched_at=datetime.fromisoformat(r["fetched_at"]),
                    )
                )
            except (TypeError, ValueError) as e:
                logger.warning("skipping unreadable cache record: %s", e)
        return out

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def _reopen_fresh(db_path: Path) -> sqlite3.Connection:
    corrupt = db_path.with_name(db_path.name + ".corrupt")
    try:
        db_path.replace(corrupt)
        for suffix in ("-wal", "-shm"):
            db_path.with_name(db_path.name + suffix).unlink(missing_ok=True)
        return db_mod.connect(db_path, check_same_thread=False)
    except (sqlite3.Error, OSError) as e:
        logger.warning("cache %s cannot be recreated (%s); using memory only", db_path, e)
        return db_mod.connect(db_mod.MEMORY, check_same_thread=False)

