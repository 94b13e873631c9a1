from __future__ import annotations

import sqlite3
from pathlib import Path

SCHEMA_VERSION = 2

MEMORY = ":memory:"


class StorageError(RuntimeError):
    """A local store (cache, quota, non-working days) is unreadable or corrupt."""


def connect(db_path: Path | str, *, check_same_thread: bool = True) -> sqlite3.Connection:
    if str(db_path) != MEMORY:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        _migrate(conn)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )

    cur = conn.execute("SELECT value FROM meta WHERE key='schema_version'")
    row = cur.fetchone()
    if row is None:
        version = 0
        conn.execute(
            "INSERT INTO meta(key, value) VALUES('schema_version', ?)",
            ("0",),
        )
        conn.commit()
    else:
        try:
            version = int(row["value"])
        except (TypeError, ValueError):
            version = 0

    if version > SCHEMA_VERSION:
        # Written by a newer release; its extra columns are ignored.
        return

    # v1: one row per cache key, payload kept as opaque JSON text
    if version < 1:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_records (
                cache_key TEXT PRIMARY KEY,
                identity TEXT NOT NULL,
                workspace_id INTEGER,
                scope TEXT NOT NULL,
                range_start TEXT NOT NULL,
                range_end TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                fetched_at TEXT NOT NULL
            )
            """
        )
        version = 1

    # v2: range lookups for rollups
    if version < 2:
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_cache_records_scope
            ON cache_records(identity, workspace_id, scope, range_start, range_end)
            """
        )
        version = 2

    conn.execute(
        "UPDATE meta SET value=? WHERE key='schema_version'",
        (str(version),),
    )
    conn.commit()
