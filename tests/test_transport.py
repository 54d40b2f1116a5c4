"""
Tests for HttpxTransport against mocked HTTP (pytest-httpx).

Test plan:
- get_json: query params sent, JSON object returned
- post_json: JSON body sent, JSON object returned
- HTTP status >= 400 raises httpx.HTTPStatusError
- Non-object JSON body raises ValueError
- Connection failures propagate as httpx exceptions
- Adapters work end to end over the real transport
"""

import httpx
import pytest
from pytest_httpx import HTTPXMock

from batch_submitter.block_source import RpcBlockSource
from batch_submitter.client import JsonRpcSettlementClient
from batch_submitter.transport import HttpxTransport, JsonTransport

L2_RPC = "http://l2.test:26657"
L2_LCD = "http://l2.test:1317"
L1_RPC = "http://l1.test:26657"


class TestHttpxTransport:
    def test_implements_protocol(self) -> None:
        assert isinstance(HttpxTransport(), JsonTransport)
        assert HttpxTransport(timeout=5.0).timeout == 5.0

    @pytest.mark.asyncio
    async def test_get_json(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{L2_RPC}/block_bulk?start=1&end=2", json={"blocks": ["a", "b"]}
        )
        body = await HttpxTransport().get_json(
            f"{L2_RPC}/block_bulk", params={"start": "1", "end": "2"}
        )
        assert body == {"blocks": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_post_json(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            method="POST",
            url=L1_RPC,
            match_json={"jsonrpc": "2.0", "id": 1, "method": "status"},
            json={"result": {"ok": True}},
        )
        body = await HttpxTransport().post_json(
            L1_RPC, {"jsonrpc": "2.0", "id": 1, "method": "status"}
        )
        assert body == {"result": {"ok": True}}

    @pytest.mark.asyncio
    async def test_http_error_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{L2_LCD}/x", status_code=503)
        with pytest.raises(httpx.HTTPStatusError):
            await HttpxTransport().get_json(f"{L2_LCD}/x")

    @pytest.mark.asyncio
    async def test_non_object_body_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{L2_LCD}/x", json=[1, 2, 3])
        with pytest.raises(ValueError, match="not a JSON object"):
            await HttpxTransport().get_json(f"{L2_LCD}/x")

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("refused"), url=f"{L2_LCD}/x")
        with pytest.raises(httpx.ConnectError):
            await HttpxTransport().get_json(f"{L2_LCD}/x")


class TestAdaptersOverHttpx:
    @pytest.mark.asyncio
    async def test_block_source(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=f"{L2_LCD}/cosmos/base/tendermint/v1beta1/blocks/latest",
            json={"block": {"header": {"height": "250"}}},
        )
        httpx_mock.add_response(
            url=f"{L2_RPC}/block_bulk?start=101&end=200",
            json={"blocks": [f"b{h}" for h in range(101, 201)]},
        )
        source = RpcBlockSource(L2_RPC, L2_LCD, HttpxTransport())
        assert await source.latest_height() == 250
        bulk = await source.fetch(101, 200)
        assert bulk is not None
        assert len(bulk.blocks) == 100
        assert bulk.blocks[0] == "b101"

    @pytest.mark.asyncio
    async def test_settlement_client(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            method="POST",
            url=L1_RPC,
            json={"jsonrpc": "2.0", "id": 1, "result": {"code": 0, "hash": "AB" * 32}},
        )
        client = JsonRpcSettlementClient(L1_RPC, HttpxTransport())
        result = await client.broadcast("dHg=")
        assert result.accepted is True
        request = httpx_mock.get_request()
        assert request is not None
        assert request.method == "POST"
