"""
PubSubHubbub hub client.

Sends subscribe/unsubscribe requests for channel feeds.  A 2xx answer
only means the hub accepted the request; the subscription takes effect
when the hub calls back and the verification handler records it.
Redirects are never followed: a 3xx answer is not a confirmation and is
reported as a protocol violation rather than guessed at.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

import aiohttp

from ..errors import HubRequestError, ProtocolViolation
from ..topics import topic_url
from .base import HttpClientBase

logger = logging.getLogger(__name__)


class HubMode(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


class HubClient(HttpClientBase):
    def __init__(
        self,
        hub_url: str,
        callback_url: str,
        feed_base_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(session, timeout=timeout)
        self.hub_url = hub_url
        self.callback_url = callback_url
        self.feed_base_url = feed_base_url

    def topic_for(self, topic_id: str) -> str:
        return topic_url(self.feed_base_url, topic_id)

    async def request(self, mode: HubMode, topic_id: str) -> None:
        """Ask the hub to (un)subscribe ``topic_id`` with synchronous verification.

        Raises:
            HubRequestError: network failure or a 4xx/5xx answer.
            ProtocolViolation: the hub answered with a redirect.
        """
        form = {
            "hub.mode": HubMode(mode).value,
            "hub.topic": self.topic_for(topic_id),
            "hub.callback": self.callback_url,
            "hub.verify": "sync",
        }
        session = self._get_session()
        try:
            async with session.post(
                self.hub_url, data=form, allow_redirects=False, timeout=self.timeout
            ) as resp:
                status = resp.status
                if 200 <= status < 300:
                    logger.debug("Hub accepted %s for %s (%s)", form["hub.mode"], topic_id, status)
                    return
                if 300 <= status < 400:
                    location = resp.headers.get("Location")
                    logger.warning(
                        "Hub redirected %s for %s to %s; not following",
                        form["hub.mode"],
                        topic_id,
                        location or "<no Location header>",
                    )
                    raise ProtocolViolation(
                        f"hub answered {status} redirect to {location or 'nowhere'}",
                        status=status,
                    )
                snippet = await self._error_snippet(resp)
                logger.warning("Hub rejected %s for %s (%s): %s", form["hub.mode"], topic_id, status, snippet)
                raise HubRequestError(f"hub returned {status}: {snippet}".rstrip(": "), status=status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Hub request for %s failed: %s", topic_id, exc)
            raise HubRequestError(f"hub request failed: {exc!r}") from exc
