"""
Shared aiohttp client used by every source adapter.
"""

import json
import logging
import ssl
from typing import Any, Dict, Optional

import aiohttp
import certifi

from newsdesk.services.retry import RetryPolicy, retry_async
from newsdesk.utils.error_monitoring import MalformedPayloadError, SourceFetchError

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; newsdesk/1.0; +https://github.com/newsdesk)",
    "Accept": "application/rss+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class HttpClient:
    """
    Lazily created aiohttp session with certifi-backed TLS.

    Every request goes through `retry_async`, so each call is individually
    timed out and retried according to the policy it is given.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, headers: Optional[Dict[str, str]] = None):
        self.policy = policy or RetryPolicy()
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(__name__)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp ClientSession with proper SSL configuration."""
        if self.session is None or self.session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context, limit=20)
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.policy.timeout),
                connector=connector,
            )
        return self.session

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def _get_once(
        self,
        url: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> str:
        session = await self._get_session()
        async with session.get(url, params=params, headers=headers) as resp:
            if resp.status != 200:
                retry_after = resp.headers.get("Retry-After")
                try:
                    retry_after_seconds = float(retry_after) if retry_after else None
                except ValueError:
                    retry_after_seconds = None
                raise SourceFetchError(
                    f"HTTP {resp.status} for {url}",
                    status=resp.status,
                    retry_after=retry_after_seconds,
                )
            return await resp.text()

    async def get_text(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> str:
        return await retry_async(
            lambda: self._get_once(url, params, headers),
            policy or self.policy,
            label=f"GET {url}",
        )

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> Any:
        body = await self.get_text(url, params=params, headers=headers, policy=policy)
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedPayloadError(f"Invalid JSON from {url}: {e}") from e
