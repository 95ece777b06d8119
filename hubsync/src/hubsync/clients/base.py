"""Shared aiohttp session handling for the outbound HTTP clients."""

from __future__ import annotations

import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


class HttpClientBase:
    """Lazily owns an ``aiohttp.ClientSession`` unless one is supplied.

    Passing a session lets several clients share one connection pool;
    such a session is not closed by :meth:`close`.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @staticmethod
    async def _error_snippet(resp: aiohttp.ClientResponse) -> str:
        # Avoid logging full response bodies; truncate to prevent leakage
        try:
            text = await resp.text()
        except (aiohttp.ClientError, UnicodeDecodeError):
            return ""
        return text[:200] if text else ""
