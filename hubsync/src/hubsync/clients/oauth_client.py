"""
OAuth2 client for the Google authorization server.

Implements the two grants the token manager needs: exchanging an
authorization code (obtained by the web front end's admin route) and
refreshing an access token.  Consent is always requested with
``access_type=offline`` and ``prompt=consent`` so that Google issues a
refresh token; an exchange that comes back without one is useless to a
background worker and is rejected with :class:`ExchangeError`.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp

from ..errors import ExchangeError, OAuthError
from ..models import Credential, utcnow
from .base import HttpClientBase

logger = logging.getLogger(__name__)


class OAuthClient(HttpClientBase):
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        auth_uri: str = "https://accounts.google.com/o/oauth2/auth",
        token_uri: str = "https://oauth2.googleapis.com/token",
        scopes: Optional[List[str]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        super().__init__(session, timeout=timeout)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.auth_uri = auth_uri
        self.token_uri = token_uri
        self.scopes = list(scopes or [])
        self.clock = clock

    def authorization_url(self, state: Optional[str] = None) -> str:
        """URL the operator opens to grant (or re-grant) offline access."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        if state:
            params["state"] = state
        return f"{self.auth_uri}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Credential:
        """Exchange an authorization code for a credential.

        Raises:
            ExchangeError: the provider refused the code, could not be
                reached, or did not grant a refresh token.
        """
        try:
            data = await self._token_request(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                }
            )
        except OAuthError as exc:
            raise ExchangeError(f"authorization code exchange failed: {exc}") from exc
        refresh_token = data.get("refresh_token")
        if not refresh_token:
            raise ExchangeError(
                "no refresh token was granted; the consent screen must request offline access"
            )
        return self._credential_from(data, refresh_token)

    async def refresh(self, credential: Credential) -> Credential:
        """Use the refresh token to obtain a new access token.

        Google normally omits ``refresh_token`` from refresh responses, in
        which case the existing one is kept.

        Raises:
            OAuthError: the refresh token was rejected or the provider
                could not be reached.
        """
        data = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": credential.refresh_token}
        )
        return self._credential_from(data, data.get("refresh_token") or credential.refresh_token)

    def _credential_from(self, data: Dict[str, Any], refresh_token: str) -> Credential:
        access_token = data.get("access_token")
        if not access_token:
            raise OAuthError("token response did not contain an access token")
        try:
            expires_in = int(data.get("expires_in", 0))
        except (TypeError, ValueError) as exc:
            raise OAuthError(f"invalid expires_in in token response: {data.get('expires_in')!r}") from exc
        return Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self.clock() + dt.timedelta(seconds=expires_in),
        )

    async def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        payload = {"client_id": self.client_id, "client_secret": self.client_secret, **form}
        session = self._get_session()
        try:
            async with session.post(self.token_uri, data=payload, timeout=self.timeout) as resp:
                if resp.status >= 400:
                    snippet = await self._error_snippet(resp)
                    logger.error("OAuth %s grant failed (%s): %s", form["grant_type"], resp.status, snippet)
                    raise OAuthError(f"token endpoint returned {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise OAuthError(f"token endpoint unreachable: {exc}") from exc
        if not isinstance(data, dict):
            raise OAuthError("token endpoint returned a non-object body")
        return data
