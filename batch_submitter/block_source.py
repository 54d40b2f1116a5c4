"""
Block source: the L2 read boundary.

Defines the interface the worker depends on, plus the RPC-backed
implementation used in production.

Protocol methods:
    - latest_height() -> int
    - fetch(start, end) -> BlockBulk | None

``fetch`` returns None when the node reports the range as unavailable
(no bulk, or an empty one). The worker only calls fetch for ranges at
or below the height it just observed, so None there is a FetchError,
not a reason to wait.

RpcBlockSource endpoints:
    - GET {l2_lcd}/cosmos/base/tendermint/v1beta1/blocks/latest
        -> {"block": {"header": {"height": "1234"}}}
    - GET {l2_rpc}/block_bulk?start=100&end=149
        -> {"blocks": ["<base64 block>", ...]}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from batch_submitter.errors import FetchError
from batch_submitter.transport import JsonTransport

LATEST_BLOCK_PATH = "/cosmos/base/tendermint/v1beta1/blocks/latest"
BLOCK_BULK_PATH = "/block_bulk"


@dataclass(frozen=True)
class BlockBulk:
    """Raw block data for an inclusive height range.

    Attributes:
        start: First height in the bulk.
        end: Last height in the bulk.
        blocks: Encoded blocks in height order, opaque to the core.
    """

    start: int
    end: int
    blocks: tuple[str, ...]


@runtime_checkable
class BlockSource(Protocol):
    """Interface for reading finalized L2 blocks."""

    async def latest_height(self) -> int:
        """Return the latest height the source can serve.

        Raises:
            FetchError: If the height cannot be determined.
        """
        ...

    async def fetch(self, start: int, end: int) -> BlockBulk | None:
        """Fetch blocks ``[start, end]``. None means unavailable.

        Raises:
            FetchError: On transport failure or malformed response.
        """
        ...


class RpcBlockSource:
    """BlockSource backed by the L2 node's REST and RPC endpoints.

    Args:
        l2_rpc_url: Base URL serving ``/block_bulk``.
        l2_lcd_url: Base URL serving the tendermint latest-block query.
        transport: Injectable JSON transport.
    """

    def __init__(
        self,
        l2_rpc_url: str,
        l2_lcd_url: str,
        transport: JsonTransport,
    ) -> None:
        self._rpc_url = l2_rpc_url.rstrip("/")
        self._lcd_url = l2_lcd_url.rstrip("/")
        self._transport = transport

    async def latest_height(self) -> int:
        url = self._lcd_url + LATEST_BLOCK_PATH
        try:
            response = await self._transport.get_json(url)
        except Exception as exc:
            raise FetchError(
                f"latest height query failed: {exc}",
                error_code="BACKEND_UNAVAILABLE",
                details={"url": url},
            ) from exc
        return _parse_latest_height(response, url)

    async def fetch(self, start: int, end: int) -> BlockBulk | None:
        url = self._rpc_url + BLOCK_BULK_PATH
        try:
            response = await self._transport.get_json(
                url, params={"start": str(start), "end": str(end)}
            )
        except Exception as exc:
            raise FetchError(
                f"block bulk query failed: {exc}",
                error_code="BACKEND_UNAVAILABLE",
                details={"url": url, "start": start, "end": end},
            ) from exc
        return _parse_block_bulk(response, start, end)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_latest_height(response: dict[str, Any], url: str) -> int:
    try:
        height = response["block"]["header"]["height"]
        return int(height)
    except (KeyError, TypeError, ValueError) as exc:
        raise FetchError(
            "latest block response has no valid block.header.height",
            error_code="MALFORMED_RESPONSE",
            details={"url": url},
        ) from exc


def _parse_block_bulk(
    response: dict[str, Any], start: int, end: int
) -> BlockBulk | None:
    blocks = response.get("blocks")
    if blocks is None or blocks == []:
        return None
    if not isinstance(blocks, list) or not all(isinstance(b, str) for b in blocks):
        raise FetchError(
            "block bulk response has non-string blocks",
            error_code="MALFORMED_RESPONSE",
            details={"start": start, "end": end},
        )
    return BlockBulk(start=start, end=end, blocks=tuple(blocks))
