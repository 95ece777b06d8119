"""
Handler for the hub's verification callback (``GET`` on the webhook URL).

The web front end passes the request's query parameters in and returns
the challenge as a plain-text body.  A confirmed subscribe records the
lease in the registry; a confirmed unsubscribe removes the topic.  A
request that cannot be parsed raises :class:`MalformedInboundPayload`
before anything is read from or written to the store, and should be
answered with a 4xx.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Annotated, Callable, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..errors import MalformedInboundPayload
from ..models import utcnow
from ..topics import topic_id_from_url
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class _Verification(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    topic: str = Field(..., alias="hub.topic", min_length=1)
    challenge: str = Field(..., alias="hub.challenge", min_length=1)


# Leases past this are rejected; the expiration must stay a representable instant.
MAX_LEASE_SECONDS = 10 * 365 * 24 * 60 * 60


class SubscribeVerification(_Verification):
    mode: Literal["subscribe"] = Field(..., alias="hub.mode")
    lease_seconds: int = Field(..., alias="hub.lease_seconds", ge=0, le=MAX_LEASE_SECONDS)


class UnsubscribeVerification(_Verification):
    mode: Literal["unsubscribe"] = Field(..., alias="hub.mode")


Verification = Annotated[
    Union[SubscribeVerification, UnsubscribeVerification],
    Field(discriminator="mode"),
]

_verification = TypeAdapter(Verification)


def parse_verification(query: Mapping[str, str]) -> Union[SubscribeVerification, UnsubscribeVerification]:
    """Validate the callback's query parameters.

    Raises:
        MalformedInboundPayload: unknown mode, missing parameter or a
            lease that is not an integer between 0 and ``MAX_LEASE_SECONDS``.
    """
    try:
        return _verification.validate_python(dict(query))
    except ValidationError as exc:
        raise MalformedInboundPayload(f"invalid hub verification request: {exc.error_count()} error(s)") from exc


class HubVerificationHandler:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        feed_base_url: str,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.registry = registry
        self.feed_base_url = feed_base_url
        self.clock = clock

    async def handle(self, query: Mapping[str, str]) -> str:
        """Apply a verified (un)subscription and return the challenge to echo."""
        request = parse_verification(query)
        topic_id = topic_id_from_url(self.feed_base_url, request.topic)
        if topic_id is None:
            raise MalformedInboundPayload(f"unrecognised hub topic: {request.topic}")

        if isinstance(request, SubscribeVerification):
            expiration = self.clock() + dt.timedelta(seconds=request.lease_seconds)
            await self.registry.upsert(topic_id, expiration)
            logger.info("Hub confirmed subscription to %s until %s", topic_id, expiration.isoformat())
        else:
            await self.registry.remove(topic_id)
            logger.info("Hub confirmed unsubscription from %s", topic_id)
        return request.challenge
