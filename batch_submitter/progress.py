"""
Durable batch submission progress.

The progress store is the single source of truth for "submitted". A
record exists only for batches whose settlement transaction was
confirmed, so on startup the next batch index is simply
``latest().batch_index + 1`` (or 0 on an empty store).

The store provides:
    - latest(): the record with the highest batch index.
    - append(): persist one record; a duplicate index is refused.
    - get() / history(): read access for operators and tests.

The store does NOT provide:
    - Updates or deletes (records are append-only history).
    - Retry. Every sqlite failure surfaces as StoreError.

Single-process, crash-safe.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from batch_submitter.errors import StoreError
from batch_submitter.integrity import prefixed_digest
from batch_submitter.storage import BatchStorage


def _now_utc() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


@dataclass(frozen=True)
class BatchRecord:
    """One submitted batch.

    Attributes:
        ledger_id: Rollup instance the batch belongs to.
        batch_index: Position of the batch, from 0.
        payload: Compressed bytes committed on L1.
        tx_hash: L1 transaction hash that committed it, if known.
        created_at: When the record was persisted (RFC3339 UTC).
    """

    ledger_id: str
    batch_index: int
    payload: bytes = field(repr=False)
    tx_hash: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.ledger_id:
            raise ValueError("ledger_id must be non-empty")
        if self.batch_index < 0:
            raise ValueError(f"batch_index must be >= 0, got: {self.batch_index}")

    def payload_digest(self) -> str:
        return prefixed_digest(self.payload)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> BatchRecord:
        return cls(
            ledger_id=row["ledger_id"],
            batch_index=row["batch_index"],
            payload=bytes(row["payload"]),
            tx_hash=row["tx_hash"],
            created_at=row["created_at"],
        )


class ProgressStore:
    """Append-only batch record store backed by SQLite.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        try:
            self._storage = BatchStorage(db_path)
        except sqlite3.Error as exc:
            raise StoreError(
                f"cannot open progress store: {exc}",
                error_code="OPEN_FAILED",
                details={"db_path": str(db_path)},
            ) from exc

    def close(self) -> None:
        self._storage.close()

    def latest(self, ledger_id: str) -> BatchRecord | None:
        """Return the record with the highest batch index, or None.

        Raises:
            StoreError: If the read fails.
        """
        try:
            row = self._storage.get_latest(ledger_id)
        except sqlite3.Error as exc:
            raise StoreError(
                f"reading latest batch failed: {exc}",
                error_code="READ_FAILED",
                details={"ledger_id": ledger_id},
            ) from exc
        return BatchRecord.from_row(row) if row is not None else None

    def append(self, record: BatchRecord) -> BatchRecord:
        """Persist a record. Called at most once per batch index.

        Args:
            record: The record to persist. If created_at is empty, the
                current time is used.

        Returns:
            The record as stored (with created_at filled in).

        Raises:
            StoreError: DUPLICATE_INDEX if the index already exists,
                WRITE_FAILED on any other sqlite failure.
        """
        created_at = record.created_at or _now_utc()
        details = {"ledger_id": record.ledger_id, "batch_index": record.batch_index}
        try:
            self._storage.insert_record(
                ledger_id=record.ledger_id,
                batch_index=record.batch_index,
                payload=record.payload,
                payload_digest=record.payload_digest(),
                tx_hash=record.tx_hash,
                created_at=created_at,
            )
        except sqlite3.IntegrityError as exc:
            raise StoreError(
                f"batch {record.batch_index} already recorded",
                error_code="DUPLICATE_INDEX",
                details=details,
            ) from exc
        except sqlite3.Error as exc:
            raise StoreError(
                f"writing batch failed: {exc}",
                error_code="WRITE_FAILED",
                details=details,
            ) from exc

        return BatchRecord(
            ledger_id=record.ledger_id,
            batch_index=record.batch_index,
            payload=record.payload,
            tx_hash=record.tx_hash,
            created_at=created_at,
        )

    def get(self, ledger_id: str, batch_index: int) -> BatchRecord | None:
        """Return one record, or None if that index was never recorded."""
        try:
            row = self._storage.get_record(ledger_id, batch_index)
        except sqlite3.Error as exc:
            raise StoreError(
                f"reading batch failed: {exc}",
                error_code="READ_FAILED",
                details={"ledger_id": ledger_id, "batch_index": batch_index},
            ) from exc
        return BatchRecord.from_row(row) if row is not None else None

    def history(self, ledger_id: str) -> list[BatchRecord]:
        """Return all records for a ledger in batch index order."""
        try:
            rows = self._storage.list_records(ledger_id)
        except sqlite3.Error as exc:
            raise StoreError(
                f"reading batch history failed: {exc}",
                error_code="READ_FAILED",
                details={"ledger_id": ledger_id},
            ) from exc
        return [BatchRecord.from_row(row) for row in rows]
