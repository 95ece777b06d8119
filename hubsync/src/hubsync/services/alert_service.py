"""
Alert Service
=============

Delivers operator alerts (currently only "re-authentication required")
built by other components.  Producers call :meth:`AlertService.send`,
which never blocks; :meth:`AlertService.run` delivers queued messages
one at a time.

Configuration
-------------

``ALERT_ENABLE``
    Set to ``true``/``1``/``yes`` to post alerts to Slack.  When unset,
    alerts are only logged.

``SLACK_BOT_TOKEN`` / ``SLACK_CHANNEL_ID``
    Credentials for Slack notifications.  Both are required for Slack
    delivery; otherwise the alert is logged at WARNING level.

A failed Slack post is logged and the loop moves on to the next alert.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackClientError

from ..config import Settings
from ..models import AlertMessage
from ..shutdown import race_shutdown
from . import metrics

logger = logging.getLogger(__name__)


class AlertService:
    def __init__(
        self,
        enabled: bool = False,
        slack_token: Optional[str] = None,
        slack_channel: Optional[str] = None,
        client: Optional[WebClient] = None,
    ) -> None:
        self.enabled = enabled
        self.slack_channel = slack_channel
        self.client = client
        if self.client is None and enabled and slack_token:
            self.client = WebClient(token=slack_token)
        if enabled and (self.client is None or not slack_channel):
            logger.warning("Alerts enabled but Slack is not fully configured; falling back to console logging")
        self._outbox: "asyncio.Queue[AlertMessage]" = asyncio.Queue()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlertService":
        return cls(
            enabled=settings.alert_enable,
            slack_token=settings.slack_bot_token,
            slack_channel=settings.slack_channel_id,
        )

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def send(self, message: AlertMessage) -> None:
        """Queue ``message`` for delivery."""
        self._outbox.put_nowait(message)
        metrics.ALERTS_SENT.inc()
        logger.info("Queued alert: %s", message.subject)

    async def deliver(self, message: AlertMessage) -> bool:
        """Post one message.  Returns ``True`` if Slack accepted it."""
        text = message.render()
        if not (self.enabled and self.client is not None and self.slack_channel):
            logger.warning("ALERT: %s", text)
            return False
        try:
            await asyncio.to_thread(self.client.chat_postMessage, channel=self.slack_channel, text=text)
        except (SlackClientError, OSError) as exc:
            logger.error("Failed to send Slack alert: %s", exc)
            logger.warning("ALERT: %s", text)
            return False
        logger.info("Sent Slack alert: %s", message.subject)
        return True

    async def run(self, shutdown: asyncio.Event) -> None:
        logger.info("AlertService started; enabled=%s, slack_channel=%s", self.enabled, self.slack_channel)
        while not shutdown.is_set():
            stopped, message = await race_shutdown(shutdown, self._outbox.get())
            if stopped:
                break
            await self.deliver(message)
        logger.info("AlertService stopped")
