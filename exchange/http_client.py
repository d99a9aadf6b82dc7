"""
JSON-over-HTTP base client.
One GET per call, uniform failure signaling, no retries.
"""

from __future__ import annotations
import asyncio
import json
from typing import Any, Dict, Optional
import aiohttp
import logging

from exchange.errors import DecodeError, FetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class RestClient:
    """Async GET + JSON decode over a shared aiohttp session."""

    def __init__(self, base_url: str = "", timeout_sec: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}{endpoint}"

    async def fetch_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        GET `endpoint` and return the decoded JSON body.

        Raises FetchError on a non-2xx status or transport failure,
        DecodeError when the body is not JSON.
        """
        session = await self._get_session()
        url = self._url(endpoint)
        merged = {**DEFAULT_HEADERS, **(headers or {})}

        try:
            async with session.get(url, params=params, headers=merged) as resp:
                if not 200 <= resp.status < 300:
                    logger.debug(f"[REST] GET {url} -> {resp.status} {resp.reason}")
                    raise FetchError(str(resp.url), resp.status, resp.reason or "")
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"[REST] GET {url} failed: {e!r}")
            raise FetchError(url, None, type(e).__name__) from e

        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as e:
            raise DecodeError(url, str(e)) from e
