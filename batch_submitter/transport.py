"""
HTTP transport protocol for node calls.

Defines the seam where concrete HTTP implementations plug in. The block
source, bridge lookup and settlement client depend on this protocol, not
on httpx directly, so the transport can be swapped for test fakes
without changing any parsing logic.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)

Two verbs:
    - get_json(url, params): REST queries (LCD, block_bulk).
    - post_json(url, payload): JSON-RPC calls (broadcast_tx_sync, tx).

Transport-level failures (connection refused, timeout, TLS, HTTP status
>= 400, non-JSON body) are raised. Callers map them to their own error
kind (FetchError, SubmitError, ConfigError).
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class JsonTransport(Protocol):
    """Async transport for JSON over HTTP."""

    async def get_json(
        self, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Send a GET request and return the parsed JSON object.

        Raises:
            Exception: On transport-level failures.
        """
        ...

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON POST request and return the parsed JSON object.

        Raises:
            Exception: On transport-level failures.
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    Lazily imports httpx so that modules depending only on the protocol
    import without it.

    Args:
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def get_json(
        self, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Send GET request via httpx."""
        import httpx

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return _json_object(response.json(), url)

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON POST request via httpx."""
        import httpx

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            return _json_object(response.json(), url)


def _json_object(body: Any, url: str) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise ValueError(
            f"response from {url} was not a JSON object "
            f"(got {type(body).__name__})"
        )
    return body
