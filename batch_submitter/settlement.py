"""
Settlement submitter. Commits one batch payload on L1.

Composes the pure planning layer (tx.py, payload.py) with the impure
boundaries (signer.py, client.py):

    plan -> sign -> broadcast -> confirm (poll get_tx) -> TxReceipt

Committing is treated as one atomic external effect. Either the tx is
found in a block with code 0 and a TxReceipt is returned, or SubmitError
is raised. "Lost" and "still pending" are not distinguished: running out
of confirmation attempts is a failure like any other, and the worker
aborts rather than persisting an unconfirmed batch.

Secrets never appear in receipts, errors, or log lines.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from batch_submitter.client import SettlementClient
from batch_submitter.errors import SubmitError
from batch_submitter.payload import payload_budget
from batch_submitter.signer import Signer
from batch_submitter.tx import batch_memo, plan_record_batch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TxReceipt:
    """Proof that a batch transaction was included and executed.

    Attributes:
        tx_hash: Transaction hash (uppercase hex).
        height: L1 block height of inclusion.
        key_id: Public identifier of the key that signed it.
    """

    tx_hash: str
    height: int | None
    key_id: str


@runtime_checkable
class BatchCommitter(Protocol):
    """What the worker needs from the settlement side."""

    async def submit(
        self, ledger_id: str, payload: bytes, *, batch_index: int
    ) -> TxReceipt:
        ...


class SettlementSubmitter:
    """Signs, broadcasts and confirms batch transactions.

    Args:
        client: Settlement client for broadcast and lookup.
        signer: Signer holding the batch submitter key.
        submission_interval: Bridge submission interval. Scales the
            payload byte budget.
        confirm_attempts: Max get_tx lookups before giving up.
        confirm_interval_s: Delay before each lookup.
        sleep: Injectable async sleep, for tests.
    """

    def __init__(
        self,
        client: SettlementClient,
        signer: Signer,
        *,
        submission_interval: int,
        confirm_attempts: int = 20,
        confirm_interval_s: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if confirm_attempts < 1:
            raise ValueError(f"confirm_attempts must be >= 1, got: {confirm_attempts}")
        self._client = client
        self._signer = signer
        self._max_payload_bytes = payload_budget(submission_interval)
        self._confirm_attempts = confirm_attempts
        self._confirm_interval_s = confirm_interval_s
        self._sleep = sleep or asyncio.sleep

    @property
    def max_payload_bytes(self) -> int:
        return self._max_payload_bytes

    async def submit(
        self,
        ledger_id: str,
        payload: bytes,
        *,
        batch_index: int,
    ) -> TxReceipt:
        """Commit a payload and wait for it to be included.

        Args:
            ledger_id: Rollup identifier.
            payload: Compressed batch payload.
            batch_index: Index of the batch, recorded in the tx memo.

        Returns:
            TxReceipt for the included transaction.

        Raises:
            SubmitError: On any failure to obtain a successful inclusion.
        """
        context = {"ledger_id": ledger_id, "batch_index": batch_index}

        # 1. Plan
        try:
            tx = plan_record_batch(
                self._signer.address,
                ledger_id,
                payload,
                max_payload_bytes=self._max_payload_bytes,
                memo=batch_memo(ledger_id, batch_index),
            )
        except ValueError as exc:
            raise SubmitError(
                f"cannot build batch transaction: {exc}",
                error_code="INVALID_TX",
                details={**context, "payload_bytes": len(payload)},
            ) from exc

        # 2. Sign
        try:
            signed = self._signer.sign(tx)
        except Exception as exc:
            raise SubmitError(
                f"signing failed: {exc}",
                error_code="SIGNING_FAILED",
                details=context,
            ) from exc

        # 3. Broadcast
        try:
            result = await self._client.broadcast(signed.tx_blob_b64)
        except Exception as exc:
            raise SubmitError(
                f"broadcast failed: {exc}",
                error_code="BACKEND_UNAVAILABLE",
                details={**context, "tx_hash": signed.tx_hash},
            ) from exc

        if not result.accepted:
            raise SubmitError(
                f"broadcast rejected: {result.detail or 'no detail'}",
                error_code="REJECTED",
                details={
                    **context,
                    "tx_hash": signed.tx_hash,
                    "code": result.code,
                    "codespace": result.codespace,
                },
            )

        tx_hash = (result.tx_hash or signed.tx_hash).upper()
        logger.info(
            "batch tx broadcast",
            extra={**context, "tx_hash": tx_hash, "key_id": signed.key_id},
        )

        # 4. Confirm
        return await self._confirm(tx_hash, signed.key_id, context)

    async def _confirm(
        self, tx_hash: str, key_id: str, context: dict[str, object]
    ) -> TxReceipt:
        for attempt in range(1, self._confirm_attempts + 1):
            await self._sleep(self._confirm_interval_s)
            try:
                status = await self._client.get_tx(tx_hash)
            except Exception as exc:
                raise SubmitError(
                    f"tx lookup failed: {exc}",
                    error_code="BACKEND_UNAVAILABLE",
                    details={**context, "tx_hash": tx_hash, "attempt": attempt},
                ) from exc

            if status.error_code is not None:
                raise SubmitError(
                    f"tx lookup failed: {status.detail or status.error_code}",
                    error_code=status.error_code,
                    details={**context, "tx_hash": tx_hash, "attempt": attempt},
                )

            if not status.found:
                logger.debug(
                    "batch tx not yet included",
                    extra={**context, "tx_hash": tx_hash, "attempt": attempt},
                )
                continue

            if status.code not in (None, 0):
                raise SubmitError(
                    f"batch tx failed on-chain: {status.detail or 'no detail'}",
                    error_code="EXECUTION_FAILED",
                    details={
                        **context,
                        "tx_hash": tx_hash,
                        "code": status.code,
                        "height": status.height,
                    },
                )

            return TxReceipt(tx_hash=tx_hash, height=status.height, key_id=key_id)

        raise SubmitError(
            f"batch tx not included after {self._confirm_attempts} lookups",
            error_code="TIMEOUT",
            details={**context, "tx_hash": tx_hash},
        )
