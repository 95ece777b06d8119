"""
secrets_manager
================

Loads secrets from environment variables or from files mounted into the
container.  If ``{NAME}_FILE`` is set, the secret is read from that path;
otherwise ``{NAME}`` is read from the environment.  This lets operators
mount the Google client secret and the Slack token as Docker or
Kubernetes secrets without leaking them into the environment.

Example usage::

    from hubsync.secrets_manager import get_default_secrets_manager

    secrets = get_default_secrets_manager()
    client_secret = secrets.get_secret("GOOGLE_CLIENT_SECRET")
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional


class BaseSecretsManager:
    """Abstract base class for secrets managers."""

    def get_secret(self, name: str) -> Optional[str]:  # pragma: no cover - override
        """Return the secret value for ``name`` or ``None`` if unavailable."""
        raise NotImplementedError


class EnvFileSecretsManager(BaseSecretsManager):
    """
    Loads secrets from environment variables and optional ``*_FILE`` paths.

    If both ``{name}`` and ``{name}_FILE`` are set, the file takes
    precedence.  Relative file paths are resolved against ``base_path``.
    """

    def __init__(self, base_path: Optional[Path] = None) -> None:
        self.base_path = base_path
        self._cache: Dict[str, Optional[str]] = {}

    def get_secret(self, name: str) -> Optional[str]:
        if name in self._cache:
            return self._cache[name]

        file_path = os.getenv(f"{name}_FILE")
        if file_path:
            path = Path(file_path)
            if not path.is_absolute() and self.base_path is not None:
                path = self.base_path / path
            try:
                value: Optional[str] = path.read_text(encoding="utf-8").strip()
            except OSError:
                value = None
        else:
            value = os.getenv(name)

        self._cache[name] = value
        return value


def get_default_secrets_manager() -> BaseSecretsManager:
    """Return the secrets manager used by :class:`hubsync.config.Settings`.

    ``SECRETS_BASE_PATH`` controls where relative ``*_FILE`` paths are
    resolved; it defaults to the current working directory.
    """
    base = os.getenv("SECRETS_BASE_PATH")
    return EnvFileSecretsManager(base_path=Path(base) if base else Path.cwd())


__all__ = [
    "BaseSecretsManager",
    "EnvFileSecretsManager",
    "get_default_secrets_manager",
]
