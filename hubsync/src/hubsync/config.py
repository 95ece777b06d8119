"""
Runtime configuration for the subscription worker.

All tunables are gathered into a single validated :class:`Settings`
model.  Values are looked up through the default secrets manager so
that credentials can be supplied either as environment variables or as
``*_FILE`` mounted secrets.  The Google OAuth client may alternatively
be described by the JSON document Google hands out for "web"
applications; point ``GOOGLE_CLIENT_SECRETS_PATH`` at it and the
``client_id``/``client_secret``/``redirect_uris``/``auth_uri``/
``token_uri`` fields are taken from there.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .secrets_manager import BaseSecretsManager, get_default_secrets_manager

YOUTUBE_SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
]


class Settings(BaseModel):
    """Validated worker configuration."""

    database_url: str = "sqlite+aiosqlite:///hubsync.sqlite"

    hub_url: str = "https://pubsubhubbub.appspot.com/subscribe"
    feed_base_url: str = "https://www.youtube.com/xml/feeds/videos.xml"
    callback_url: str = Field(..., min_length=1)
    subscriptions_api_url: str = "https://www.googleapis.com/youtube/v3/subscriptions"

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    oauth_auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    oauth_token_uri: str = "https://oauth2.googleapis.com/token"
    oauth_scopes: List[str] = Field(default_factory=lambda: list(YOUTUBE_SCOPES))

    refresh_window_seconds: int = Field(60 * 60 * 24, gt=0)
    refresh_delay_seconds: int = Field(60 * 60, ge=0)
    refresh_fallback_seconds: int = Field(60 * 60 * 24, gt=0)
    reconcile_interval_seconds: int = Field(60 * 60, gt=0)
    queue_concurrency: int = Field(10, gt=0)
    http_timeout_seconds: float = Field(30.0, gt=0)

    alert_enable: bool = False
    slack_bot_token: Optional[str] = None
    slack_channel_id: Optional[str] = None

    prometheus_port: int = 9108
    log_level: str = "INFO"

    @field_validator("oauth_scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value):
        if isinstance(value, str):
            return [scope for scope in value.replace(",", " ").split() if scope]
        return value

    @field_validator("alert_enable", mode="before")
    @classmethod
    def _parse_flag(cls, value):
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes"}
        return value

    @model_validator(mode="after")
    def _check_refresh_margin(self) -> "Settings":
        if self.refresh_delay_seconds >= self.refresh_window_seconds:
            raise ValueError("REFRESH_DELAY_SECONDS must be smaller than REFRESH_WINDOW_SECONDS")
        return self

    @classmethod
    def from_env(cls, secrets: Optional[BaseSecretsManager] = None) -> "Settings":
        """Build settings from the secrets manager (environment and ``*_FILE``)."""
        secrets = secrets or get_default_secrets_manager()
        get: Callable[[str], Optional[str]] = secrets.get_secret

        values = {}
        for field_name in cls.model_fields:
            env_name = _ENV_OVERRIDES.get(field_name, field_name.upper())
            raw = get(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw.strip()

        client_file = get("GOOGLE_CLIENT_SECRETS_PATH")
        if client_file:
            for key, value in load_client_secrets(Path(client_file)).items():
                values.setdefault(key, value)

        return cls(**values)


_ENV_OVERRIDES = {
    "callback_url": "PUBSUB_CALLBACK_URL",
}


def load_client_secrets(path: Path) -> dict:
    """Read a Google ``client_secret_*.json`` file.

    Both the ``web`` and ``installed`` application layouts are accepted.
    """
    document = json.loads(path.read_text(encoding="utf-8"))
    section = document.get("web") or document.get("installed")
    if not section:
        raise ValueError(f"{path} does not describe a web or installed OAuth client")
    values = {
        "google_client_id": section["client_id"],
        "google_client_secret": section["client_secret"],
    }
    redirect_uris = section.get("redirect_uris") or []
    if redirect_uris:
        values["google_redirect_uri"] = redirect_uris[0]
    if section.get("auth_uri"):
        values["oauth_auth_uri"] = section["auth_uri"]
    if section.get("token_uri"):
        values["oauth_token_uri"] = section["token_uri"]
    return values


__all__ = ["Settings", "load_client_secrets", "YOUTUBE_SCOPES"]
