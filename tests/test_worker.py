"""
Tests for the batch submission cycle (initialize + process_one).

All tests use a fake block source and a fake committer over a real
in-memory ProgressStore.

Test plan:
- initialize: empty store → index 0, store with 0..k → index k+1
- Happy path: first range [start, start+interval-1], record persisted
  with payload, tx hash and timestamp, index advances by one
- Resumption: store holding index 3 → next range is range_for(4)
- Backoff: range end above current height → WAITING, zero fetch,
  submit and persist calls, index unchanged
- Boundary: range end equal to current height is processed
- Fatal fetch: block source failure → FetchError with context, nothing
  persisted, index not advanced
- Unavailable bulk for a produced range → FetchError(UNAVAILABLE)
- Fatal submit: SubmitError propagates, nothing persisted
- Fatal store: duplicate record → StoreError, submit happened once
- Sequential cycles: contiguous ranges, one record per index
"""

from typing import Any

import pytest

from batch_submitter.block_source import BlockBulk
from batch_submitter.bridge import BridgeConfig
from batch_submitter.errors import FetchError, StoreError, SubmitError
from batch_submitter.heights import HeightCalculator, HeightRange
from batch_submitter.payload import build_payload, decode_payload
from batch_submitter.progress import BatchRecord, ProgressStore
from batch_submitter.settlement import TxReceipt
from batch_submitter.worker import (
    CycleOutcome,
    CycleResult,
    LoopState,
    Phase,
    initialize,
    process_one,
)

LEDGER_ID = "minitia-1"
FIXED_NOW = "2025-01-15T12:00:00+00:00"

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeBlockSource:
    """BlockSource with a settable chain height and synthetic blocks."""

    def __init__(
        self,
        height: int,
        *,
        fetch_should_raise: Exception | None = None,
        unavailable: bool = False,
    ) -> None:
        self.height = height
        self._fetch_should_raise = fetch_should_raise
        self._unavailable = unavailable
        self.latest_calls = 0
        self.fetch_calls: list[tuple[int, int]] = []

    async def latest_height(self) -> int:
        self.latest_calls += 1
        return self.height

    async def fetch(self, start: int, end: int) -> BlockBulk | None:
        self.fetch_calls.append((start, end))
        if self._fetch_should_raise is not None:
            raise self._fetch_should_raise
        if self._unavailable:
            return None
        return BlockBulk(
            start=start, end=end, blocks=tuple(f"block-{h}" for h in range(start, end + 1))
        )


class FakeCommitter:
    """BatchCommitter recording every submit."""

    def __init__(self, *, should_raise: Exception | None = None) -> None:
        self._should_raise = should_raise
        self.calls: list[dict[str, Any]] = []

    async def submit(
        self, ledger_id: str, payload: bytes, *, batch_index: int
    ) -> TxReceipt:
        self.calls.append(
            {"ledger_id": ledger_id, "payload": payload, "batch_index": batch_index}
        )
        if self._should_raise is not None:
            raise self._should_raise
        return TxReceipt(tx_hash=f"{batch_index:064X}", height=1000 + batch_index, key_id="k")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> ProgressStore:
    return ProgressStore(":memory:")


def _calculator(starting_height: int = 100, interval: int = 50) -> HeightCalculator:
    return HeightCalculator(
        BridgeConfig(starting_height=starting_height, submission_interval=interval)
    )


def _seed(store: ProgressStore, *indices: int) -> None:
    for i in indices:
        store.append(
            BatchRecord(
                ledger_id=LEDGER_ID,
                batch_index=i,
                payload=b"seed",
                tx_hash=None,
                created_at=FIXED_NOW,
            )
        )


async def _run_cycle(
    state: LoopState,
    store: ProgressStore,
    source: FakeBlockSource,
    committer: FakeCommitter,
    calculator: HeightCalculator | None = None,
) -> CycleResult:
    return await process_one(
        state,
        ledger_id=LEDGER_ID,
        calculator=calculator or _calculator(),
        block_source=source,
        submitter=committer,
        store=store,
        now_fn=lambda: FIXED_NOW,
    )


class TestInitialize:
    def test_empty_store(self, store: ProgressStore) -> None:
        state = initialize(LEDGER_ID, store)
        assert state == LoopState(batch_index=0, phase=Phase.COMPUTING_RANGE)

    def test_resumes_after_latest(self, store: ProgressStore) -> None:
        _seed(store, 0, 1, 2, 3)
        assert initialize(LEDGER_ID, store).batch_index == 4

    def test_ignores_other_ledgers(self, store: ProgressStore) -> None:
        store.append(
            BatchRecord(ledger_id="other", batch_index=9, payload=b"x", created_at=FIXED_NOW)
        )
        assert initialize(LEDGER_ID, store).batch_index == 0


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_first_batch(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=149)
        committer = FakeCommitter()
        result = await _run_cycle(initialize(LEDGER_ID, store), store, source, committer)

        assert result.outcome == CycleOutcome.SUBMITTED
        assert result.height_range == HeightRange(100, 149)
        assert result.current_height == 149
        assert source.fetch_calls == [(100, 149)]
        assert result.state.batch_index == 1

        record = store.latest(LEDGER_ID)
        assert record is not None
        assert record == result.record
        assert record.batch_index == 0
        assert record.tx_hash == f"{0:064X}"
        assert record.created_at == FIXED_NOW
        assert decode_payload(record.payload)[0] == "block-100"
        assert len(decode_payload(record.payload)) == 50

    @pytest.mark.asyncio
    async def test_submits_built_payload(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=1000)
        committer = FakeCommitter()
        result = await _run_cycle(LoopState(batch_index=0), store, source, committer)
        expected = build_payload(
            BlockBulk(100, 149, tuple(f"block-{h}" for h in range(100, 150)))
        )
        assert committer.calls == [
            {"ledger_id": LEDGER_ID, "payload": expected, "batch_index": 0}
        ]
        assert result.receipt is not None and result.receipt.height == 1000

    @pytest.mark.asyncio
    async def test_resumes_at_next_range(self, store: ProgressStore) -> None:
        _seed(store, 0, 1, 2, 3)
        source = FakeBlockSource(height=10_000)
        result = await _run_cycle(
            initialize(LEDGER_ID, store), store, source, FakeCommitter()
        )
        assert result.height_range == _calculator().range_for(4)
        assert result.height_range == HeightRange(300, 349)
        assert source.fetch_calls == [(300, 349)]
        assert [r.batch_index for r in store.history(LEDGER_ID)] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_end_equal_to_height_is_processed(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=149)
        result = await _run_cycle(LoopState(batch_index=0), store, source, FakeCommitter())
        assert result.outcome == CycleOutcome.SUBMITTED

    @pytest.mark.asyncio
    async def test_sequential_cycles_are_contiguous(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=10_000)
        committer = FakeCommitter()
        state = initialize(LEDGER_ID, store)
        ranges = []
        for _ in range(5):
            result = await _run_cycle(state, store, source, committer)
            ranges.append(result.height_range)
            state = result.state

        for a, b in zip(ranges, ranges[1:]):
            assert a.end + 1 == b.start
        assert [c["batch_index"] for c in committer.calls] == [0, 1, 2, 3, 4]
        assert [r.batch_index for r in store.history(LEDGER_ID)] == [0, 1, 2, 3, 4]


class TestBackoff:
    @pytest.mark.asyncio
    async def test_range_not_produced(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=50)
        committer = FakeCommitter()
        calculator = _calculator(starting_height=1, interval=100)
        state = initialize(LEDGER_ID, store)

        result = await _run_cycle(state, store, source, committer, calculator)

        assert result.outcome == CycleOutcome.WAITING
        assert result.state.batch_index == 0
        assert result.state.phase == Phase.AWAITING_AVAILABILITY
        assert result.height_range == HeightRange(1, 100)
        assert result.current_height == 50
        assert result.record is None and result.receipt is None
        assert source.fetch_calls == []
        assert committer.calls == []
        assert store.history(LEDGER_ID) == []

    @pytest.mark.asyncio
    async def test_waits_then_proceeds(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=148)
        committer = FakeCommitter()
        state = initialize(LEDGER_ID, store)

        waiting = await _run_cycle(state, store, source, committer)
        assert waiting.outcome == CycleOutcome.WAITING

        source.height = 149
        submitted = await _run_cycle(waiting.state, store, source, committer)
        assert submitted.outcome == CycleOutcome.SUBMITTED
        assert submitted.height_range == waiting.height_range
        assert len(committer.calls) == 1


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_fetch_failure(self, store: ProgressStore) -> None:
        source = FakeBlockSource(
            height=500,
            fetch_should_raise=FetchError("node down", error_code="BACKEND_UNAVAILABLE"),
        )
        committer = FakeCommitter()
        state = initialize(LEDGER_ID, store)

        with pytest.raises(FetchError) as exc_info:
            await _run_cycle(state, store, source, committer)

        details = exc_info.value.details
        assert details["ledger_id"] == LEDGER_ID
        assert details["batch_index"] == 0
        assert details["start"] == 100
        assert details["end"] == 149
        assert details["phase"] == "FETCHING"
        assert committer.calls == []
        assert store.history(LEDGER_ID) == []
        assert initialize(LEDGER_ID, store).batch_index == 0

    @pytest.mark.asyncio
    async def test_unavailable_bulk(self, store: ProgressStore) -> None:
        source = FakeBlockSource(height=500, unavailable=True)
        with pytest.raises(FetchError) as exc_info:
            await _run_cycle(LoopState(batch_index=0), store, source, FakeCommitter())
        assert exc_info.value.error_code == "UNAVAILABLE"
        assert exc_info.value.details["current_height"] == 500

    @pytest.mark.asyncio
    async def test_submit_failure(self, store: ProgressStore) -> None:
        committer = FakeCommitter(
            should_raise=SubmitError("rejected", error_code="REJECTED")
        )
        with pytest.raises(SubmitError) as exc_info:
            await _run_cycle(
                LoopState(batch_index=0), store, FakeBlockSource(height=500), committer
            )
        assert exc_info.value.details["phase"] == "SUBMITTING"
        assert store.history(LEDGER_ID) == []

    @pytest.mark.asyncio
    async def test_existing_context_not_overwritten(self, store: ProgressStore) -> None:
        committer = FakeCommitter(
            should_raise=SubmitError("x", error_code="TIMEOUT", details={"batch_index": 99})
        )
        with pytest.raises(SubmitError) as exc_info:
            await _run_cycle(
                LoopState(batch_index=0), store, FakeBlockSource(height=500), committer
            )
        assert exc_info.value.details["batch_index"] == 99

    @pytest.mark.asyncio
    async def test_duplicate_record(self, store: ProgressStore) -> None:
        _seed(store, 0)
        committer = FakeCommitter()
        # A stale state pointing at an index that is already recorded.
        with pytest.raises(StoreError) as exc_info:
            await _run_cycle(
                LoopState(batch_index=0), store, FakeBlockSource(height=500), committer
            )
        assert exc_info.value.error_code == "DUPLICATE_INDEX"
        assert exc_info.value.details["phase"] == "PERSISTING"
        assert len(committer.calls) == 1
        assert len(store.history(LEDGER_ID)) == 1

    @pytest.mark.asyncio
    async def test_height_query_failure(self, store: ProgressStore) -> None:
        class DownSource(FakeBlockSource):
            async def latest_height(self) -> int:
                raise FetchError("down", error_code="BACKEND_UNAVAILABLE")

        source = DownSource(height=0)
        with pytest.raises(FetchError) as exc_info:
            await _run_cycle(LoopState(batch_index=2), store, source, FakeCommitter())
        assert exc_info.value.details["phase"] == "AWAITING_AVAILABILITY"
        assert exc_info.value.details["batch_index"] == 2
        assert source.fetch_calls == []
