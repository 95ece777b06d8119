"""
Token manager: owns the single OAuth credential and hands out access tokens.

The credential moves between two states, ``TokenPresent`` and
``TokenMissing``.  ``wait_for_token`` is the only way background tasks
obtain an access token:

* present and unexpired: returned immediately;
* present but expired: refreshed with the OAuth provider, persisted and
  returned; a rejected refresh demotes the state to missing;
* missing: an operator alert carrying the consent link is sent once per
  demotion, then the caller waits until ``load_new_token`` installs a
  fresh credential.

State changes are persisted before they become visible and are broadcast
through an ``asyncio.Condition``.  The refresh call itself is made
outside the lock, so two callers that both observe the same expired
credential may each refresh it; the second result simply overwrites the
first.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Callable, Optional, Protocol

from ..errors import OAuthError
from ..models import (
    AlertMessage,
    Credential,
    TokenMissing,
    TokenPresent,
    TokenStatus,
    utcnow,
)
from ..services import metrics
from ..services.credential_store import CredentialStore
from .oauth_client import OAuthClient

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, message: AlertMessage) -> None: ...


class TokenManager:
    def __init__(
        self,
        store: CredentialStore,
        oauth: OAuthClient,
        notifier: Notifier,
        status: TokenStatus,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.store = store
        self.oauth = oauth
        self.notifier = notifier
        self.clock = clock
        self._status: TokenStatus = status
        self._changed = asyncio.Condition()

    @classmethod
    async def create(
        cls,
        store: CredentialStore,
        oauth: OAuthClient,
        notifier: Notifier,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> "TokenManager":
        """Build a manager from whatever credential is persisted."""
        credential = await store.load()
        if credential is None:
            logger.info("No stored OAuth credential; waiting for operator consent")
            status: TokenStatus = TokenMissing(alerted=False)
        else:
            status = TokenPresent(credential=credential)
        return cls(store, oauth, notifier, status, clock=clock)

    @property
    def status(self) -> TokenStatus:
        return self._status

    async def load_new_token(self, code: str) -> Credential:
        """Exchange an authorization code and install the resulting credential.

        On failure the current state is left untouched and the
        :class:`~hubsync.errors.ExchangeError` propagates to the caller.
        """
        credential = await self.oauth.exchange_code(code)
        async with self._changed:
            await self._transition(TokenPresent(credential=credential))
        logger.info("Installed new OAuth credential (expires %s)", credential.expires_at.isoformat())
        return credential

    async def wait_for_token(self) -> str:
        """Return a valid access token, waiting for operator consent if needed."""
        while True:
            async with self._changed:
                status = self._status
                if isinstance(status, TokenMissing):
                    if not status.alerted:
                        self.notifier.send(self._reauth_alert())
                        await self._transition(TokenMissing(alerted=True))
                    await self._changed.wait()
                    continue
                stale = status.credential
                if not stale.is_expired(self.clock()):
                    return stale.access_token

            fresh = await self._refresh(stale)

            async with self._changed:
                current = self._status
                if fresh is None:
                    if isinstance(current, TokenPresent) and current.credential == stale:
                        await self._transition(TokenMissing(alerted=False))
                    continue
                if isinstance(current, TokenPresent) and current.credential != stale:
                    # Someone else installed a credential meanwhile; prefer theirs.
                    continue
                await self._transition(TokenPresent(credential=fresh))
                return fresh.access_token

    async def _refresh(self, stale: Credential) -> Optional[Credential]:
        try:
            fresh = await self.oauth.refresh(stale)
        except OAuthError as exc:
            logger.error("Failed to refresh OAuth access token: %s", exc)
            metrics.TOKEN_REFRESHES.labels(result="error").inc()
            return None
        metrics.TOKEN_REFRESHES.labels(result="ok").inc()
        logger.info("Refreshed OAuth access token (expires %s)", fresh.expires_at.isoformat())
        return fresh

    async def _transition(self, status: TokenStatus) -> None:
        # Caller holds self._changed.
        if isinstance(status, TokenPresent):
            await self.store.save(status.credential)
        elif isinstance(self._status, TokenPresent):
            await self.store.clear()
        self._status = status
        self._changed.notify_all()

    def _reauth_alert(self) -> AlertMessage:
        return AlertMessage(
            subject="Re-authentication required",
            body=(
                "The subscription worker has no usable OAuth credential and has "
                "paused reconciliation. Open the link below and grant access."
            ),
            link=self.oauth.authorization_url(),
        )
