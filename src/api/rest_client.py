"""
Color Me Shop REST API client.

An authenticated wrapper over the v1 REST API, bound to one shop's access
token. Each call is a single attempt; a non-2xx answer raises
``ColorMeApiError`` with the raw body, a transport failure raises
``NetworkError``.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import BaseModel, Field

from .errors import ColorMeApiError, NetworkError

logger = logging.getLogger(__name__)


class RestConfig(BaseModel):
    """Where the REST API lives."""
    base_url: str = Field(default="https://api.shop-pro.jp/v1", description="API base URL")


def _query_value(value: Any) -> Any:
    # aiohttp rejects bool query values; the API expects lowercase literals
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class ColorMeRestClient:
    """
    REST client for one shop.

    Use as ``async with ColorMeRestClient(token) as client`` so the HTTP
    session is closed when the caller is done.
    """

    def __init__(self, access_token: str, config: Optional[RestConfig] = None):
        self._access_token = access_token
        self.config = config or RestConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ColorMeRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _session_for_request(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(raise_for_status=False)
        return self._session

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Call ``{base_url}{endpoint}`` with the shop's bearer token.

        Args:
            method: HTTP method
            endpoint: Path below the base URL, e.g. ``/shop.json``
            params: Query parameters; ``None`` values are left out
            json: Request body
            headers: Extra headers, merged over the defaults

        Returns:
            Decoded JSON body, or ``{}`` for an empty body

        Raises:
            ColorMeApiError: the API answered with a non-2xx status
            NetworkError: the request never got an answer
        """
        request_headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        request_headers.update(headers or {})
        query = {k: _query_value(v) for k, v in (params or {}).items() if v is not None}
        url = f"{self.config.base_url}{endpoint}"

        session = self._session_for_request()
        started = time.monotonic()
        try:
            async with session.request(
                method, url, params=query or None, json=json, headers=request_headers
            ) as response:
                body = await response.text()
                logger.debug(f"{method} {url} -> {response.status} in {time.monotonic() - started:.2f}s")

                if 200 <= response.status < 300:
                    return await response.json(content_type=None) if body else {}

                try:
                    error_data = await response.json(content_type=None)
                except ValueError:
                    error_data = None
                raise ColorMeApiError(
                    status_code=response.status,
                    response_text=body,
                    error_response=error_data if isinstance(error_data, dict) else None,
                )
        except aiohttp.ClientError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(f"Network error: {e}", original_error=e) from e
        except asyncio.TimeoutError as e:
            logger.error(f"{method} {url} timed out")
            raise NetworkError("Request timed out", original_error=e) from e

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return await self.request("GET", endpoint, params=params, **kwargs)

    async def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return await self.request("POST", endpoint, json=json, **kwargs)

    async def put(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return await self.request("PUT", endpoint, json=json, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.request("DELETE", endpoint, **kwargs)


class MockColorMeRestClient:
    """
    Stand-in for ``ColorMeRestClient`` in tests.

    ``responses`` maps ``"METHOD /endpoint"`` to a value to return, an
    exception to raise, or a callable ``(method, endpoint, params, json)``.
    Unmapped calls raise a 404 ``ColorMeApiError``.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.call_history: List[Dict[str, Any]] = []
        self.closed = False

    async def __aenter__(self) -> "MockColorMeRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        self.closed = True

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        self.call_history.append({
            "method": method,
            "endpoint": endpoint,
            "params": params,
            "json": json,
            "at": datetime.now(timezone.utc),
        })

        key = f"{method} {endpoint}"
        if key not in self.responses:
            raise ColorMeApiError(status_code=404, response_text=f"Mock: {key} not found")

        canned = self.responses[key]
        if isinstance(canned, Exception):
            raise canned
        if callable(canned):
            return canned(method, endpoint, params, json)
        return canned

    async def get(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.request("POST", endpoint, **kwargs)

    async def put(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.request("PUT", endpoint, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.request("DELETE", endpoint, **kwargs)
