"""
Client for the upstream "list my subscriptions" API (YouTube Data API v3).

Pages through ``subscriptions.list?mine=true`` with a bearer token.  The
ETag captured from a previous listing is sent as ``If-None-Match`` on the
first page; a ``304 Not Modified`` means nothing changed and the whole
listing is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from ..errors import ProtocolViolation, UpstreamApiError
from ..models import KnownEntity
from .base import HttpClientBase

logger = logging.getLogger(__name__)

# Preferred thumbnail sizes, smallest first.
THUMBNAIL_PREFERENCE = ("default", "standard", "medium", "high", "maxres")


@dataclass
class SubscriptionListing:
    """Every subscribed channel keyed by id, plus the first page's ETag."""

    entities: Dict[str, KnownEntity] = field(default_factory=dict)
    etag: Optional[str] = None


class SubscriptionsApiClient(HttpClientBase):
    def __init__(
        self,
        api_url: str = "https://www.googleapis.com/youtube/v3/subscriptions",
        *,
        page_size: int = 50,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(session, timeout=timeout)
        self.api_url = api_url
        self.page_size = page_size

    async def list_subscriptions(
        self, token: str, etag: Optional[str] = None
    ) -> Optional[SubscriptionListing]:
        """Collect all pages.  Returns ``None`` when the listing is unchanged.

        Raises:
            UpstreamApiError: network failure or a non-2xx page.
            ProtocolViolation: an item without a channel id.
        """
        listing = SubscriptionListing()
        page_token: Optional[str] = None
        first_page = True
        while True:
            params = {
                "part": "snippet,contentDetails",
                "mine": "true",
                "maxResults": str(self.page_size),
            }
            if page_token:
                params["pageToken"] = page_token
            headers = {"Authorization": f"Bearer {token}"}
            if first_page and etag:
                headers["If-None-Match"] = etag

            data = await self._get_page(params, headers)
            if data is None:
                logger.info("Subscriptions unchanged since ETag %s", etag)
                return None
            if first_page:
                listing.etag = data.get("etag")
            for item in data.get("items") or []:
                entity = self._entity_from(item)
                listing.entities[entity.id] = entity

            page_token = data.get("nextPageToken")
            first_page = False
            if not page_token:
                return listing

    async def _get_page(
        self, params: Dict[str, str], headers: Dict[str, str]
    ) -> Optional[Dict[str, Any]]:
        session = self._get_session()
        try:
            async with session.get(
                self.api_url, params=params, headers=headers, timeout=self.timeout
            ) as resp:
                if resp.status == 304:
                    return None
                if not 200 <= resp.status < 300:
                    snippet = await self._error_snippet(resp)
                    logger.warning("Failed to paginate subscriptions (%s): %s", resp.status, snippet)
                    raise UpstreamApiError(
                        f"subscriptions API returned {resp.status}", status=resp.status
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise UpstreamApiError(f"subscriptions API request failed: {exc!r}") from exc
        if not isinstance(data, dict):
            raise ProtocolViolation("subscriptions API returned a non-object page")
        return data

    @staticmethod
    def _entity_from(item: Dict[str, Any]) -> KnownEntity:
        snippet = item.get("snippet") or {}
        resource = snippet.get("resourceId") or {}
        channel_id = resource.get("channelId")
        if not channel_id:
            raise ProtocolViolation(f"subscription item {item.get('id')!r} has no channel id")
        if resource.get("kind") not in (None, "youtube#channel"):
            logger.debug("Unexpected resource kind %s for %s", resource.get("kind"), channel_id)
        thumbnails = snippet.get("thumbnails") or {}
        image = ""
        for size in THUMBNAIL_PREFERENCE:
            url = (thumbnails.get(size) or {}).get("url")
            if url:
                image = url
                break
        return KnownEntity(
            id=channel_id,
            display_name=snippet.get("title") or channel_id,
            display_image=image,
        )
