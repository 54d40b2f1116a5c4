"""
Batch submission worker.

``process_one()`` runs exactly one cycle for the current batch index:

    1. Compute the height range for the index.
    2. Query the latest L2 height. If the range end is above it, return
       WAITING with the index unchanged. Nothing is fetched, submitted
       or persisted.
    3. Fetch the block bulk for the range.
    4. Build the compressed payload.
    5. Submit it on L1 and wait for inclusion.
    6. Persist the BatchRecord.
    7. Return SUBMITTED with the index advanced by one.

Any fatal error (FetchError, SubmitError, StoreError) propagates with
batch index, range and phase added to its details. Nothing is
persisted unless step 5 succeeded, and an index is never persisted
twice.

``BatchSubmitter`` owns the loop: it fetches the bridge parameters
once, resumes from the progress store, and repeats ``process_one()``
until ``stop()`` is called or a fatal error aborts the run. The backoff
between WAITING cycles is a timed wait on the stop event, so a stop
request ends the wait immediately. A stop never interrupts a cycle in
progress.

Single task, one batch end to end at a time. The guarantee is
at-least-once: a crash between step 5 and step 6 resubmits the same
range after restart.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum

from batch_submitter.block_source import BlockSource
from batch_submitter.bridge import BridgeConfig
from batch_submitter.errors import BatchSubmitterError, FetchError
from batch_submitter.heights import HeightCalculator, HeightRange
from batch_submitter.payload import build_payload
from batch_submitter.progress import BatchRecord, ProgressStore
from batch_submitter.settlement import BatchCommitter, TxReceipt

logger = logging.getLogger(__name__)


def _default_now() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


class Phase(StrEnum):
    """Where the loop is within a cycle."""

    IDLE = "IDLE"
    INITIALIZING = "INITIALIZING"
    COMPUTING_RANGE = "COMPUTING_RANGE"
    AWAITING_AVAILABILITY = "AWAITING_AVAILABILITY"
    FETCHING = "FETCHING"
    BUILDING_PAYLOAD = "BUILDING_PAYLOAD"
    SUBMITTING = "SUBMITTING"
    PERSISTING = "PERSISTING"
    STOPPED = "STOPPED"


class CycleOutcome(StrEnum):
    """Non-fatal result of one cycle."""

    SUBMITTED = "SUBMITTED"
    WAITING = "WAITING"


@dataclass(frozen=True)
class LoopState:
    """Immutable loop state. A new value is produced on every transition.

    Attributes:
        batch_index: Index of the batch being (or next to be) processed.
        range: Height range of that batch, once computed.
        phase: Current phase.
    """

    batch_index: int
    range: HeightRange | None = None
    phase: Phase = Phase.IDLE

    def enter(self, phase: Phase) -> LoopState:
        return replace(self, phase=phase)


@dataclass(frozen=True)
class CycleResult:
    """Result of one process_one() call.

    Attributes:
        outcome: SUBMITTED or WAITING.
        state: State to start the next cycle from.
        height_range: Range handled (or waited on) by this cycle.
        current_height: Latest L2 height observed by this cycle.
        record: The persisted record. None when WAITING.
        receipt: The settlement receipt. None when WAITING.
    """

    outcome: CycleOutcome
    state: LoopState
    height_range: HeightRange
    current_height: int
    record: BatchRecord | None = None
    receipt: TxReceipt | None = None


def initialize(ledger_id: str, store: ProgressStore) -> LoopState:
    """Resume from the progress store.

    Returns:
        State whose batch_index is latest + 1, or 0 if nothing is stored.

    Raises:
        StoreError: If the store cannot be read.
    """
    latest = store.latest(ledger_id)
    batch_index = latest.batch_index + 1 if latest is not None else 0
    return LoopState(batch_index=batch_index, phase=Phase.COMPUTING_RANGE)


async def process_one(
    state: LoopState,
    *,
    ledger_id: str,
    calculator: HeightCalculator,
    block_source: BlockSource,
    submitter: BatchCommitter,
    store: ProgressStore,
    now_fn: Callable[[], str] | None = None,
) -> CycleResult:
    """Process the batch at ``state.batch_index``.

    Args:
        state: Current loop state.
        ledger_id: Rollup identifier written into the record.
        calculator: Height calculator bound to the bridge parameters.
        block_source: L2 block source.
        submitter: Settlement submitter.
        store: Progress store.
        now_fn: Callable returning RFC3339 UTC timestamps.
            Inject for deterministic tests. Default: real wall clock.

    Returns:
        CycleResult. WAITING leaves the batch index unchanged.

    Raises:
        FetchError, SubmitError, StoreError: Fatal; details carry
            ledger_id, batch_index, start, end and phase.
    """
    if now_fn is None:
        now_fn = _default_now

    # 1. Compute range
    height_range = calculator.range_for(state.batch_index)
    state = replace(state, range=height_range, phase=Phase.COMPUTING_RANGE)

    try:
        # 2. Availability
        state = state.enter(Phase.AWAITING_AVAILABILITY)
        current_height = await block_source.latest_height()
        if height_range.end > current_height:
            return CycleResult(
                outcome=CycleOutcome.WAITING,
                state=state,
                height_range=height_range,
                current_height=current_height,
            )

        # 3. Fetch
        state = state.enter(Phase.FETCHING)
        bulk = await block_source.fetch(height_range.start, height_range.end)
        if bulk is None:
            raise FetchError(
                "block bulk unavailable for a produced range",
                error_code="UNAVAILABLE",
                details={"current_height": current_height},
            )

        # 4. Build
        state = state.enter(Phase.BUILDING_PAYLOAD)
        payload = build_payload(bulk)

        # 5. Submit
        state = state.enter(Phase.SUBMITTING)
        receipt = await submitter.submit(
            ledger_id, payload, batch_index=state.batch_index
        )

        # 6. Persist
        state = state.enter(Phase.PERSISTING)
        record = store.append(
            BatchRecord(
                ledger_id=ledger_id,
                batch_index=state.batch_index,
                payload=payload,
                tx_hash=receipt.tx_hash,
                created_at=now_fn(),
            )
        )
    except BatchSubmitterError as exc:
        exc.with_context(
            ledger_id=ledger_id,
            batch_index=state.batch_index,
            start=height_range.start,
            end=height_range.end,
            phase=str(state.phase),
        )
        raise

    # 7. Advance
    return CycleResult(
        outcome=CycleOutcome.SUBMITTED,
        state=LoopState(
            batch_index=state.batch_index + 1,
            phase=Phase.COMPUTING_RANGE,
        ),
        height_range=height_range,
        current_height=current_height,
        record=record,
        receipt=receipt,
    )


class BatchSubmitter:
    """Long-running submission loop with cooperative stop.

    Args:
        ledger_id: Rollup identifier.
        block_source: L2 block source.
        store: Progress store.
        load_bridge_config: Coroutine factory returning the bridge
            parameters. Called once per run().
        make_submitter: Builds the settlement submitter once the bridge
            parameters are known (its byte budget depends on them).
        poll_interval_s: Backoff between WAITING cycles.
        now_fn: Timestamp source for persisted records.
    """

    def __init__(
        self,
        *,
        ledger_id: str,
        block_source: BlockSource,
        store: ProgressStore,
        load_bridge_config: Callable[[], Awaitable[BridgeConfig]],
        make_submitter: Callable[[BridgeConfig], BatchCommitter],
        poll_interval_s: float = 10.0,
        now_fn: Callable[[], str] | None = None,
    ) -> None:
        self._ledger_id = ledger_id
        self._block_source = block_source
        self._store = store
        self._load_bridge_config = load_bridge_config
        self._make_submitter = make_submitter
        self._poll_interval_s = poll_interval_s
        self._now_fn = now_fn
        self._stop_event = asyncio.Event()
        self._state = LoopState(batch_index=0, phase=Phase.IDLE)

    @property
    def state(self) -> LoopState:
        """Current loop state (read-only snapshot)."""
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request a clean stop. Takes effect between cycles."""
        self._stop_event.set()

    async def run(self) -> None:
        """Run until stop() is called.

        Raises:
            BatchSubmitterError: On any fatal error, after logging it.
        """
        self._state = self._state.enter(Phase.INITIALIZING)
        try:
            bridge_config = await self._load_bridge_config()
            calculator = HeightCalculator(bridge_config)
            submitter = self._make_submitter(bridge_config)
            self._state = initialize(self._ledger_id, self._store)
        except BatchSubmitterError as exc:
            self._fail(exc)
            raise

        logger.info(
            "batch submitter started",
            extra={
                "ledger_id": self._ledger_id,
                "batch_index": self._state.batch_index,
                "starting_height": bridge_config.starting_height,
                "submission_interval": bridge_config.submission_interval,
            },
        )

        while not self._stop_event.is_set():
            try:
                result = await process_one(
                    self._state,
                    ledger_id=self._ledger_id,
                    calculator=calculator,
                    block_source=self._block_source,
                    submitter=submitter,
                    store=self._store,
                    now_fn=self._now_fn,
                )
            except BatchSubmitterError as exc:
                self._fail(exc)
                raise

            self._state = result.state
            if result.outcome == CycleOutcome.WAITING:
                logger.debug(
                    "waiting for L2 to reach batch end height",
                    extra={
                        "batch_index": result.state.batch_index,
                        "end": result.height_range.end,
                        "current_height": result.current_height,
                    },
                )
                await self._wait(self._poll_interval_s)
            else:
                assert result.record is not None
                logger.info(
                    "batch successfully saved",
                    extra={
                        "batch_index": result.record.batch_index,
                        "start": result.height_range.start,
                        "end": result.height_range.end,
                        "tx_hash": result.record.tx_hash,
                        "payload_digest": result.record.payload_digest(),
                    },
                )

        self._state = self._state.enter(Phase.STOPPED)
        logger.info(
            "batch submitter stopped",
            extra={"ledger_id": self._ledger_id, "batch_index": self._state.batch_index},
        )

    async def _wait(self, timeout: float) -> None:
        """Sleep up to ``timeout`` seconds, returning early on stop()."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout)
        except asyncio.TimeoutError:
            return

    def _fail(self, exc: BatchSubmitterError) -> None:
        self._state = self._state.enter(Phase.STOPPED)
        logger.error(
            "batch submitter aborted",
            extra={
                "error": str(exc),
                "kind": exc.kind,
                "error_code": exc.error_code,
                **exc.details,
            },
        )
