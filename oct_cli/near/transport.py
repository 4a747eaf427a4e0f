"""
Transport protocol for NEAR JSON-RPC calls.

Defines the seam where the HTTP implementation plugs in. The JSON-RPC
client depends on this protocol, not on httpx directly, so tests can
swap in a fake that returns canned responses.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)

Transports only move bytes. Every failure before a JSON body is in hand
(connection refused, timeout, non-2xx status, unparseable body) becomes
a ``TransportError``, which the retry loop treats as transient.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from oct_cli.near.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async transport for JSON-RPC POST requests."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return the parsed response.

        Args:
            url: The JSON-RPC endpoint URL.
            payload: The JSON-RPC request body (jsonrpc, id, method, params).

        Returns:
            Parsed JSON response as a dict.

        Raises:
            TransportError: On transport-level failures (connection refused,
                timeout, TLS error, HTTP error status, non-JSON body).
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    One client (and its connection pool) is reused across calls. Use as an
    async context manager, or call ``aclose()`` when done.

    Args:
        timeout: Per-request timeout in seconds.
        client: Pre-built client to use instead of creating one.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON-RPC request via httpx."""
        method = payload.get("method")
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"RPC request timed out after {self._timeout}s",
                details={"url": url, "method": method},
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"RPC endpoint returned HTTP {exc.response.status_code}",
                details={"url": url, "method": method, "status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                f"RPC request failed: {exc}",
                details={"url": url, "method": method},
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(
                "RPC endpoint returned a non-JSON body",
                details={"url": url, "method": method},
            ) from exc
        if not isinstance(body, dict):
            raise TransportError(
                f"RPC endpoint returned JSON {type(body).__name__}, expected object",
                details={"url": url, "method": method},
            )
        logger.debug("rpc %s -> %s", method, url)
        return body
