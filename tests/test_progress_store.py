"""
Tests for the progress store.

Test plan:
- latest(): None on empty store, highest index wins, scoped per ledger
- append(): returns stored record with created_at, duplicate index →
  DUPLICATE_INDEX and original row untouched
- get() / history(): lookup and ordering, payload bytes preserved
- BatchRecord: validation, payload excluded from repr, digest
- Failures: sqlite errors surface as StoreError (READ_FAILED,
  WRITE_FAILED, OPEN_FAILED)
- Persistence: file-backed store survives reopen
"""

import sqlite3
from pathlib import Path

import pytest

from batch_submitter.errors import StoreError
from batch_submitter.integrity import prefixed_digest
from batch_submitter.progress import BatchRecord, ProgressStore

LEDGER_ID = "minitia-1"
CREATED_AT = "2025-01-15T12:00:00+00:00"

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> ProgressStore:
    return ProgressStore(":memory:")


def _record(batch_index: int, **overrides: object) -> BatchRecord:
    kwargs: dict[str, object] = {
        "ledger_id": LEDGER_ID,
        "batch_index": batch_index,
        "payload": f"payload-{batch_index}".encode(),
        "tx_hash": f"{batch_index:064X}",
        "created_at": CREATED_AT,
    }
    kwargs.update(overrides)
    return BatchRecord(**kwargs)  # type: ignore[arg-type]


class TestLatest:
    def test_empty_store(self, store: ProgressStore) -> None:
        assert store.latest(LEDGER_ID) is None

    def test_highest_index_wins(self, store: ProgressStore) -> None:
        for i in (0, 1, 2):
            store.append(_record(i))
        latest = store.latest(LEDGER_ID)
        assert latest is not None
        assert latest.batch_index == 2

    def test_out_of_order_appends(self, store: ProgressStore) -> None:
        store.append(_record(5))
        store.append(_record(3))
        latest = store.latest(LEDGER_ID)
        assert latest is not None and latest.batch_index == 5

    def test_scoped_per_ledger(self, store: ProgressStore) -> None:
        store.append(_record(4))
        store.append(_record(9, ledger_id="other-ledger"))
        latest = store.latest(LEDGER_ID)
        assert latest is not None and latest.batch_index == 4
        assert store.latest("unknown") is None


class TestAppend:
    def test_returns_stored_record(self, store: ProgressStore) -> None:
        stored = store.append(_record(0))
        assert stored == _record(0)

    def test_fills_created_at(self, store: ProgressStore) -> None:
        stored = store.append(_record(0, created_at=""))
        assert stored.created_at.endswith("+00:00")
        fetched = store.get(LEDGER_ID, 0)
        assert fetched is not None and fetched.created_at == stored.created_at

    def test_duplicate_index_refused(self, store: ProgressStore) -> None:
        store.append(_record(0))
        with pytest.raises(StoreError) as exc_info:
            store.append(_record(0, payload=b"different"))
        err = exc_info.value
        assert err.error_code == "DUPLICATE_INDEX"
        assert err.kind == "STORE"
        assert err.details == {"ledger_id": LEDGER_ID, "batch_index": 0}
        fetched = store.get(LEDGER_ID, 0)
        assert fetched is not None and fetched.payload == b"payload-0"

    def test_same_index_other_ledger_allowed(self, store: ProgressStore) -> None:
        store.append(_record(0))
        store.append(_record(0, ledger_id="other-ledger"))
        assert len(store.history(LEDGER_ID)) == 1
        assert len(store.history("other-ledger")) == 1

    def test_tx_hash_optional(self, store: ProgressStore) -> None:
        store.append(_record(0, tx_hash=None))
        fetched = store.get(LEDGER_ID, 0)
        assert fetched is not None and fetched.tx_hash is None


class TestReads:
    def test_get_missing(self, store: ProgressStore) -> None:
        assert store.get(LEDGER_ID, 0) is None

    def test_payload_bytes_preserved(self, store: ProgressStore) -> None:
        payload = bytes(range(256))
        store.append(_record(0, payload=payload))
        fetched = store.get(LEDGER_ID, 0)
        assert fetched is not None
        assert fetched.payload == payload
        assert fetched.payload_digest() == prefixed_digest(payload)

    def test_history_ordered(self, store: ProgressStore) -> None:
        for i in (2, 0, 1):
            store.append(_record(i))
        assert [r.batch_index for r in store.history(LEDGER_ID)] == [0, 1, 2]

    def test_history_empty(self, store: ProgressStore) -> None:
        assert store.history(LEDGER_ID) == []


class TestBatchRecord:
    def test_empty_ledger_rejected(self) -> None:
        with pytest.raises(ValueError, match="ledger_id"):
            _record(0, ledger_id="")

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValueError, match="batch_index"):
            _record(-1)

    def test_payload_not_in_repr(self) -> None:
        assert "payload-0" not in repr(_record(0))

    def test_digest_format(self) -> None:
        digest = _record(0).payload_digest()
        assert digest.startswith("sha256:")
        assert len(digest) == len("sha256:") + 64


class TestFailures:
    def test_read_failure(
        self, store: ProgressStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(ledger_id: str) -> None:
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store._storage, "get_latest", broken)
        with pytest.raises(StoreError) as exc_info:
            store.latest(LEDGER_ID)
        assert exc_info.value.error_code == "READ_FAILED"
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)

    def test_write_failure(
        self, store: ProgressStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(**kwargs: object) -> None:
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(store._storage, "insert_record", broken)
        with pytest.raises(StoreError) as exc_info:
            store.append(_record(3))
        assert exc_info.value.error_code == "WRITE_FAILED"
        assert exc_info.value.details["batch_index"] == 3

    def test_open_failure(self, tmp_path: Path) -> None:
        with pytest.raises(StoreError) as exc_info:
            ProgressStore(tmp_path / "no-such-dir" / "batches.db")
        assert exc_info.value.error_code == "OPEN_FAILED"


class TestPersistence:
    def test_survives_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "batches.db"
        first = ProgressStore(db_path)
        first.append(_record(0))
        first.append(_record(1))
        first.close()

        second = ProgressStore(db_path)
        latest = second.latest(LEDGER_ID)
        assert latest is not None
        assert latest.batch_index == 1
        assert latest.payload == b"payload-1"
        second.close()
