"""Minimal JSON-RPC 2.0 access for reading transaction status on chain."""

from __future__ import annotations

from typing import Any, List, Optional

import httpx

from .base import ProviderUnavailableError
from .http import JsonHttpClient


class RpcError(ProviderUnavailableError):
    """Node answered with a JSON-RPC error object."""


class JsonRpcClient:
    def __init__(
        self,
        url: str,
        *,
        name: str = "rpc",
        timeout_s: float = 8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.name = name
        # Keep the endpoint path separate so httpx does not append a trailing slash to it
        parsed = httpx.URL(url)
        self._path = parsed.raw_path.decode("ascii") or "/"
        origin = f"{parsed.scheme}://{parsed.netloc.decode('ascii')}"
        self._http = JsonHttpClient(name, [origin], timeout_s=timeout_s, transport=transport)

    async def call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1,
        }
        result = await self._http.post_json(self._path, payload)
        if not isinstance(result, dict):
            raise RpcError(f"{self.name}: malformed RPC response", provider=self.name)
        if result.get("error"):
            raise RpcError(f"{self.name} RPC error: {result['error']}", provider=self.name)
        return result.get("result")
