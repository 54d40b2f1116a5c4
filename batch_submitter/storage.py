"""
SQLite storage for batch submission progress.

One table, append-only:
    - batch_records: one row per (ledger_id, batch_index), written once
      after the batch transaction is confirmed on L1.

Invariants:
    - Rows are never updated or deleted.
    - (ledger_id, batch_index) is the primary key; a second insert for
      the same pair fails instead of overwriting.
    - All timestamps are RFC3339 UTC.

SQLite patterns:
    - _get_conn() with persistent connection for :memory:
    - _transaction() context manager with commit/rollback
    - _init_schema() via executescript
    - sqlite3.Row row factory
    - WAL mode for file-backed databases

sqlite3 errors propagate unchanged; the progress store maps them to
StoreError.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any


_SCHEMA = """\
CREATE TABLE IF NOT EXISTS batch_records (
    ledger_id TEXT NOT NULL,
    batch_index INTEGER NOT NULL CHECK (batch_index >= 0),
    payload BLOB NOT NULL,
    payload_digest TEXT NOT NULL,
    tx_hash TEXT,
    created_at TEXT NOT NULL,
    PRIMARY KEY (ledger_id, batch_index)
);
"""


class BatchStorage:
    """SQLite-backed storage for batch records.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._is_memory = self._db_path == ":memory:"

        if self._is_memory:
            self._persistent_conn: sqlite3.Connection | None = sqlite3.connect(
                ":memory:", check_same_thread=False
            )
            self._persistent_conn.row_factory = sqlite3.Row
        else:
            self._persistent_conn = None

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection with proper settings."""
        if self._persistent_conn is not None:
            return self._persistent_conn

        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a database transaction."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self._persistent_conn is None:
                conn.close()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._transaction() as conn:
            conn.executescript(_SCHEMA)

    def close(self) -> None:
        """Close the persistent in-memory connection, if any."""
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None

    # -----------------------------------------------------------------
    # Record operations
    # -----------------------------------------------------------------

    def insert_record(
        self,
        ledger_id: str,
        batch_index: int,
        payload: bytes,
        payload_digest: str,
        tx_hash: str | None,
        created_at: str,
    ) -> None:
        """Insert a record row.

        Raises:
            sqlite3.IntegrityError: If (ledger_id, batch_index) already exists.
        """
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO batch_records
                (ledger_id, batch_index, payload, payload_digest, tx_hash, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (ledger_id, batch_index, payload, payload_digest, tx_hash, created_at),
            )

    def get_latest(self, ledger_id: str) -> dict[str, Any] | None:
        """Get the row with the highest batch_index for a ledger."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM batch_records
                WHERE ledger_id = ?
                ORDER BY batch_index DESC
                LIMIT 1
                """,
                (ledger_id,),
            ).fetchone()
        if row is None:
            return None
        return dict(row)

    def get_record(self, ledger_id: str, batch_index: int) -> dict[str, Any] | None:
        """Get a row by (ledger_id, batch_index)."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM batch_records WHERE ledger_id = ? AND batch_index = ?",
                (ledger_id, batch_index),
            ).fetchone()
        if row is None:
            return None
        return dict(row)

    def list_records(self, ledger_id: str) -> list[dict[str, Any]]:
        """List all rows for a ledger, ordered by batch_index."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM batch_records
                WHERE ledger_id = ?
                ORDER BY batch_index
                """,
                (ledger_id,),
            ).fetchall()
        return [dict(row) for row in rows]
