"""
Rollup batch submitter.

Reads finalized L2 blocks in fixed-size contiguous windows, compresses
each window, commits it as one L1 transaction, and records progress in
an append-only store so a restart resumes at the next unsubmitted batch.

Public API:

    Pure layer (no I/O):
        - ``range_for()``, ``HeightCalculator``, ``HeightRange``: batch
          index -> height window.
        - ``build_payload()``, ``decode_payload()``: block bulk <-> payload.
        - ``plan_record_batch()``: unsigned record_batch transaction.

    Impure layer:
        - ``process_one()``: one submission cycle.
        - ``BatchSubmitter``: the long-running loop (run/stop).
        - ``SettlementSubmitter``: sign, broadcast, confirm.
        - ``ProgressStore``: durable batch records.

    Protocols (for dependency injection):
        - ``BlockSource``, ``BatchCommitter``, ``SettlementClient``,
          ``Signer``, ``JsonTransport``.

    Errors:
        - ``ConfigError``, ``FetchError``, ``SubmitError``, ``StoreError``.
"""

from batch_submitter.block_source import BlockBulk, BlockSource, RpcBlockSource
from batch_submitter.bridge import BridgeConfig, fetch_bridge_config
from batch_submitter.client import (
    BroadcastResult,
    JsonRpcSettlementClient,
    SettlementClient,
    TxStatusResult,
)
from batch_submitter.config import SubmitterConfig
from batch_submitter.errors import (
    BatchSubmitterError,
    ConfigError,
    FetchError,
    StoreError,
    SubmitError,
)
from batch_submitter.heights import HeightCalculator, HeightRange, range_for
from batch_submitter.payload import build_payload, decode_payload
from batch_submitter.progress import BatchRecord, ProgressStore
from batch_submitter.settlement import BatchCommitter, SettlementSubmitter, TxReceipt
from batch_submitter.signer import Ed25519Signer, SignResult, Signer
from batch_submitter.transport import HttpxTransport, JsonTransport
from batch_submitter.tx import plan_record_batch
from batch_submitter.worker import (
    BatchSubmitter,
    CycleOutcome,
    CycleResult,
    LoopState,
    Phase,
    initialize,
    process_one,
)

__version__ = "0.1.0"

__all__ = [
    "BatchCommitter",
    "BatchRecord",
    "BatchSubmitter",
    "BatchSubmitterError",
    "BlockBulk",
    "BlockSource",
    "BridgeConfig",
    "BroadcastResult",
    "ConfigError",
    "CycleOutcome",
    "CycleResult",
    "Ed25519Signer",
    "FetchError",
    "HeightCalculator",
    "HeightRange",
    "HttpxTransport",
    "JsonRpcSettlementClient",
    "JsonTransport",
    "LoopState",
    "Phase",
    "ProgressStore",
    "RpcBlockSource",
    "SettlementClient",
    "SettlementSubmitter",
    "SignResult",
    "Signer",
    "StoreError",
    "SubmitError",
    "SubmitterConfig",
    "TxReceipt",
    "TxStatusResult",
    "build_payload",
    "decode_payload",
    "fetch_bridge_config",
    "initialize",
    "plan_record_batch",
    "process_one",
    "range_for",
]
