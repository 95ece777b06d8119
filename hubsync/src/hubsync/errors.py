"""
Exception hierarchy for the subscription worker.

Background tasks distinguish between failures that only affect a single
unit of work (an upstream HTTP call, an inbound verification request) and
failures that make the task itself unable to continue (the database).
The former are logged and recorded; the latter propagate out of the
task's ``run()`` coroutine to the supervisor in ``worker_main``.
"""

from __future__ import annotations

from typing import Optional


class HubSyncError(Exception):
    """Base class for all errors raised by this package."""


class PersistenceError(HubSyncError):
    """The backing store could not be read or written."""


class TransientUpstreamError(HubSyncError):
    """A remote HTTP service failed (network error, non-2xx, rate limit)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class HubRequestError(TransientUpstreamError):
    """The hub rejected or did not answer a subscribe/unsubscribe request."""


class UpstreamApiError(TransientUpstreamError):
    """The upstream subscriptions API failed."""


class ProtocolViolation(TransientUpstreamError):
    """A response was missing something the protocol requires.

    These are never treated as success.
    """


class OAuthError(HubSyncError):
    """The OAuth provider rejected a token request."""


class ExchangeError(OAuthError):
    """An authorization code could not be turned into a usable credential."""


class MalformedInboundPayload(HubSyncError):
    """An inbound hub verification request could not be understood."""


__all__ = [
    "HubSyncError",
    "PersistenceError",
    "TransientUpstreamError",
    "HubRequestError",
    "UpstreamApiError",
    "ProtocolViolation",
    "OAuthError",
    "ExchangeError",
    "MalformedInboundPayload",
]
