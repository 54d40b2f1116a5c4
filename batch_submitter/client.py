"""
Settlement client: the L1 network boundary.

Defines the interface the settlement submitter depends on, and a
CometBFT JSON-RPC implementation of it. The protocol has exactly two
methods:

    - broadcast(tx_blob_b64) -> BroadcastResult
    - get_tx(tx_hash) -> TxStatusResult

Both return boring frozen dataclasses. No exceptions for "expected"
chain failures (CheckTx rejection, tx not found): those are captured in
the result objects. Transport exceptions propagate to the caller.

Response parsing targets CometBFT JSON-RPC 2.0 conventions:
    - broadcast_tx_sync: {"result": {"code": 0, "hash": "...", "log": "",
                                     "codespace": ""}}
    - tx: {"result": {"hash": "...", "height": "42",
                      "tx_result": {"code": 0, "log": "..."}}}
    - errors: {"error": {"code": -32603, "message": "...", "data": "..."}}
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from batch_submitter.transport import JsonTransport

# CheckTx codes meaning "this exact tx is already known to the node".
# The earlier broadcast got through, so this one counts as accepted.
_ALREADY_KNOWN: frozenset[tuple[str, int]] = frozenset({("sdk", 19)})

# JSON-RPC request ID counter (simple, no thread-safety needed for async)
_REQUEST_ID = 0


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class BroadcastResult:
    """Result of broadcasting a signed transaction.

    Attributes:
        accepted: Whether the node admitted the tx to its mempool.
            True does NOT mean included in a block.
        tx_hash: Hash reported by the node. None on RPC-level errors.
        code: CheckTx result code (0 == ok). None on RPC-level errors.
        codespace: Module that produced a non-zero code.
        detail: Human-readable detail for diagnostics.
    """

    accepted: bool
    tx_hash: str | None = None
    code: int | None = None
    codespace: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class TxStatusResult:
    """Result of looking up a transaction.

    Attributes:
        found: Whether the transaction is included in a block.
        height: Block height of inclusion. None if not found.
        code: DeliverTx result code (0 == executed successfully).
        detail: Execution log or error detail.
        error_code: Set when the lookup itself failed (not "not found").
    """

    found: bool
    height: int | None = None
    code: int | None = None
    detail: str | None = None
    error_code: str | None = None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class SettlementClient(Protocol):
    """Interface for settlement-layer network operations."""

    async def broadcast(self, tx_blob_b64: str) -> BroadcastResult:
        ...

    async def get_tx(self, tx_hash: str) -> TxStatusResult:
        ...


# =========================================================================
# JSON-RPC implementation
# =========================================================================


class JsonRpcSettlementClient:
    """CometBFT JSON-RPC client implementing the SettlementClient protocol.

    Args:
        url: The L1 RPC endpoint URL (e.g. "http://localhost:26657").
        transport: Injectable JSON transport.
    """

    def __init__(self, url: str, transport: JsonTransport) -> None:
        self._url = url
        self._transport = transport

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    async def broadcast(self, tx_blob_b64: str) -> BroadcastResult:
        """Broadcast via ``broadcast_tx_sync`` (waits for CheckTx only)."""
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": "broadcast_tx_sync",
            "params": {"tx": tx_blob_b64},
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_broadcast_response(response)

    async def get_tx(self, tx_hash: str) -> TxStatusResult:
        """Look up a transaction by its hex hash via ``tx``."""
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": "tx",
            "params": {
                "hash": base64.b64encode(bytes.fromhex(tx_hash)).decode("ascii"),
                "prove": False,
            },
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_tx_response(response)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _error_detail(error: dict[str, Any]) -> str:
    data = error.get("data")
    message = error.get("message", "unknown RPC error")
    return f"{message}: {data}" if data else str(message)


def _parse_broadcast_response(response: dict[str, Any]) -> BroadcastResult:
    """Parse a broadcast_tx_sync response into BroadcastResult.

    Handles:
        - CheckTx ok (code 0)
        - CheckTx rejection (non-zero code, with codespace/log)
        - Already-in-mempool, treated as accepted
        - RPC-level errors and missing result
    """
    error = response.get("error")
    if isinstance(error, dict):
        return BroadcastResult(accepted=False, detail=_error_detail(error))

    result = response.get("result")
    if not isinstance(result, dict) or "code" not in result:
        return BroadcastResult(
            accepted=False, detail="no result.code in broadcast response"
        )

    code = int(result["code"])
    codespace = result.get("codespace") or None
    accepted = code == 0 or (codespace or "", code) in _ALREADY_KNOWN

    return BroadcastResult(
        accepted=accepted,
        tx_hash=result.get("hash"),
        code=code,
        codespace=codespace,
        detail=result.get("log") or None,
    )


def _parse_tx_response(response: dict[str, Any]) -> TxStatusResult:
    """Parse a tx response into TxStatusResult.

    Handles:
        - Transaction found, with execution code and height
        - Transaction not found (RPC error mentioning "not found")
        - Other RPC-level errors
    """
    error = response.get("error")
    if isinstance(error, dict):
        detail = _error_detail(error)
        if "not found" in detail:
            return TxStatusResult(found=False)
        return TxStatusResult(found=False, error_code="SERVER_ERROR", detail=detail)

    result = response.get("result")
    if not isinstance(result, dict):
        return TxStatusResult(
            found=False, error_code="SERVER_ERROR", detail="no result in tx response"
        )

    tx_result = result.get("tx_result")
    code = None
    detail = None
    if isinstance(tx_result, dict):
        code = int(tx_result.get("code", 0))
        detail = tx_result.get("log") or None

    height = result.get("height")
    return TxStatusResult(
        found=True,
        height=int(height) if height is not None else None,
        code=code,
        detail=detail,
    )
