"""Shared async HTTP access for provider adapters."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .base import ProviderError, ProviderUnavailableError

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}


class JsonHttpClient:
    """JSON client that walks a list of base URLs.

    A 404/405 or a transport error moves on to the next host; anything else
    is final. Errors are translated into ProviderError (rejection) or
    ProviderUnavailableError (transient) so adapters never leak httpx types.
    """

    def __init__(
        self,
        provider: str,
        base_urls: Sequence[str],
        *,
        timeout_s: float = 10,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider = provider
        self.base_urls: List[str] = [url.rstrip("/") for url in base_urls if url]
        self.timeout_s = timeout_s
        self._headers = {"accept": "application/json", **(headers or {})}
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        merged_headers = {**self._headers, **(headers or {})}
        cleaned_params = {k: v for k, v in (params or {}).items() if v is not None} or None
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(
                    base_url=base_url, timeout=self.timeout_s, transport=self._transport
                ) as client:
                    response = await client.request(
                        method, path, json=json, params=cleaned_params, headers=merged_headers
                    )
                    response.raise_for_status()
                    return response
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code in (404, 405) and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise
            except httpx.RequestError as exc:
                logger.warning("%s request to %s%s failed: %s", self.provider, base_url, path, exc)
                last_error = exc
                continue

        if last_error is not None:
            raise last_error
        raise RuntimeError(f"All {self.provider} hosts failed without providing an error response")

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._request(method, path, **kwargs)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            if status in _TRANSIENT_STATUS:
                raise ProviderUnavailableError(
                    f"{self.provider} returned HTTP {status}: {detail}", provider=self.provider
                ) from exc
            raise ProviderError(
                f"{self.provider} rejected request (HTTP {status}): {detail}",
                provider=self.provider,
                status_code=status,
                details=_error_body(exc.response),
            ) from exc
        except (httpx.RequestError, RuntimeError) as exc:
            raise ProviderUnavailableError(f"{self.provider} unreachable: {exc}", provider=self.provider) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderUnavailableError(
                f"{self.provider} returned a non-JSON body", provider=self.provider
            ) from exc

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self.request_json("GET", path, params=params, **kwargs)

    async def post_json(self, path: str, payload: Any, **kwargs: Any) -> Any:
        return await self.request_json("POST", path, json=payload, **kwargs)


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or response.reason_phrase or "")[:300]
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])[:300]
    return str(body)[:300]
