"""
Domain models for the subscription worker using Pydantic.

These models are what the store adapters return and what the background
services pass between each other.  They are frozen: a queued action,
its result and a credential snapshot are values, never mutated in place.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def utcnow() -> dt.datetime:
    """Timezone-aware current instant; every stored instant is UTC."""
    return dt.datetime.now(dt.timezone.utc)


def _ensure_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


UtcDatetime = Annotated[dt.datetime, AfterValidator(_ensure_utc)]


class SubscriptionAction(str, Enum):
    """What a queued action asks the hub to do for a topic."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    REFRESH = "refresh"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Credential(_Frozen):
    """An OAuth access/refresh token pair with the access token's expiry."""

    access_token: str
    refresh_token: str
    expires_at: UtcDatetime

    def is_expired(self, now: Optional[dt.datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())


class TokenMissing(_Frozen):
    """No usable credential; ``alerted`` records whether an alert went out."""

    alerted: bool = False


class TokenPresent(_Frozen):
    credential: Credential


TokenStatus = Union[TokenMissing, TokenPresent]


class ActiveSubscription(_Frozen):
    """A topic the hub has confirmed, with the end of its lease."""

    topic_id: str
    expiration: UtcDatetime


class QueueAction(_Frozen):
    id: int
    topic_id: str
    kind: SubscriptionAction
    enqueued_at: UtcDatetime


class QueueResult(_Frozen):
    """Terminal outcome of a queued action.  ``error`` is ``None`` on success."""

    action_id: int
    error: Optional[str] = None
    completed_at: UtcDatetime


class PendingAction(_Frozen):
    """A queued action without a result, joined with the topic's lease (if any)."""

    action: QueueAction
    active: Optional[ActiveSubscription] = None


class QueueEntry(_Frozen):
    """An action together with its result, for the dashboard history view."""

    action: QueueAction
    result: Optional[QueueResult] = None


class KnownEntity(_Frozen):
    """Display metadata for a channel, as last seen upstream."""

    id: str = Field(..., min_length=1)
    display_name: str
    display_image: str


class AlertMessage(_Frozen):
    """A pre-built notification handed to the alert transport."""

    subject: str
    body: str
    link: Optional[str] = None

    def render(self) -> str:
        text = f"{self.subject}\n\n{self.body}"
        if self.link:
            text = f"{text}\n{self.link}"
        return text


__all__ = [
    "utcnow",
    "SubscriptionAction",
    "Credential",
    "TokenMissing",
    "TokenPresent",
    "TokenStatus",
    "ActiveSubscription",
    "QueueAction",
    "QueueResult",
    "PendingAction",
    "QueueEntry",
    "KnownEntity",
    "AlertMessage",
]
