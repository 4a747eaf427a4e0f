"""
NEAR JSON-RPC client — one typed request/response exchange per call.

Translates JSON-RPC responses into parsed results or ``LedgerError``
subclasses. Uses an injectable transport (JsonRpcTransport) so the HTTP
layer can be swapped for test fakes without changing parsing logic.

No retry loops. No secrets. No NEAR logic beyond response parsing.

Response conventions:
    - Success: {"jsonrpc": "2.0", "id": n, "result": {...}}
    - Error: {"jsonrpc": "2.0", "id": n, "error": {"name", "cause", "data", ...}}
    - Some nodes report query failures inside ``result`` as
      {"result": {"error": "...", "logs": [], "block_height": ...}}
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from oct_cli.near.errors import FailureKind, RpcError, TransportError
from oct_cli.near.outcome import ExecutionOutcome, classify_rpc_error
from oct_cli.near.transport import HttpxTransport, JsonRpcTransport

logger = logging.getLogger(__name__)

# JSON-RPC request ID counter (simple, no thread-safety needed for async)
_REQUEST_ID = 0


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


class JsonRpcClient:
    """NEAR JSON-RPC client.

    Args:
        url: The JSON-RPC endpoint URL (e.g. "https://rpc.testnet.near.org").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    async def call(self, method: str, params: Any) -> Any:
        """Send one request and return its ``result``.

        Raises:
            TransportError: Transport failure or a body that is not a
                JSON-RPC response.
            RpcError: The node returned an ``error`` object.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": method,
            "params": params,
        }
        logger.debug("rpc request %s id=%s", method, payload["id"])
        response = await self._transport.post_json(self._url, payload)
        return _parse_response(method, response)

    # -----------------------------------------------------------------
    # Typed requests
    # -----------------------------------------------------------------

    async def query(self, request: dict[str, Any]) -> dict[str, Any]:
        """Generic ``query`` (view_account, view_access_key, view_state, ...).

        Defaults to ``optimistic`` finality when the request names none.
        """
        params = dict(request)
        if "finality" not in params and "block_id" not in params:
            params["finality"] = "optimistic"
        result = await self.call("query", params)
        return _parse_query_result(params.get("request_type"), result)

    async def view_access_key(self, account_id: str, public_key: str) -> dict[str, Any]:
        return await self.query(
            {
                "request_type": "view_access_key",
                "account_id": account_id,
                "public_key": public_key,
            }
        )

    async def view_account(self, account_id: str) -> dict[str, Any]:
        return await self.query({"request_type": "view_account", "account_id": account_id})

    async def view_code(self, account_id: str) -> dict[str, Any]:
        return await self.query({"request_type": "view_code", "account_id": account_id})

    async def view_state(self, account_id: str, prefix: bytes = b"") -> dict[str, Any]:
        return await self.query(
            {
                "request_type": "view_state",
                "account_id": account_id,
                "prefix_base64": base64.b64encode(prefix).decode("ascii"),
            }
        )

    async def call_function(
        self, account_id: str, method_name: str, args: bytes
    ) -> dict[str, Any]:
        """Read-only contract call; ``result["result"]`` holds the returned bytes."""
        return await self.query(
            {
                "request_type": "call_function",
                "account_id": account_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(args).decode("ascii"),
            }
        )

    async def block(self, finality: str = "final") -> dict[str, Any]:
        return await self.call("block", {"finality": finality})

    async def status(self) -> dict[str, Any]:
        return await self.call("status", [])

    async def broadcast_tx_commit(self, signed_tx_base64: str) -> ExecutionOutcome:
        """Submit a signed transaction and wait for its final outcome.

        Sends the ``broadcast_tx_commit`` method with the base64 Borsh
        ``SignedTransaction`` as the only parameter.
        """
        result = await self.call("broadcast_tx_commit", [signed_tx_base64])
        return ExecutionOutcome.from_rpc(result)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_response(method: str, response: dict[str, Any]) -> Any:
    """Extract ``result`` or raise the classified ``error``."""
    if "error" in response and response["error"] is not None:
        error = classify_rpc_error(response["error"])
        error.details.setdefault("method", method)
        raise error
    if "result" not in response:
        raise TransportError(
            f"{method} response has neither result nor error",
            details={"method": method},
        )
    return response["result"]


def _parse_query_result(request_type: str | None, result: Any) -> dict[str, Any]:
    """Surface in-result query errors as ``RpcError``.

    Missing access keys and accounts are access problems. Failed
    ``call_function`` executions are contract errors.
    """
    if not isinstance(result, dict):
        raise TransportError(
            f"query {request_type} returned {type(result).__name__}, expected object",
            details={"request_type": request_type},
        )
    error = result.get("error")
    if error is None:
        return result

    text = str(error)
    if request_type == "call_function":
        kind = FailureKind.CONTRACT_EXECUTION
    elif "does not exist" in text:
        kind = FailureKind.ACCESS_DENIED
    else:
        kind = FailureKind.UNKNOWN
    raise RpcError(
        text,
        kind=kind,
        name="QUERY_ERROR",
        details={"request_type": request_type, "logs": result.get("logs", [])},
    )
