"""
Entry point for the subscription worker.

Builds every component from :class:`~hubsync.config.Settings` and runs
the long-lived loops concurrently: queue consumer, renewal scheduler,
reconciliation loop and alert delivery.  All of them share one shutdown
event.  The first loop to exit or fail (typically with a ``PersistenceError``)
is logged and triggers shutdown of the rest; loops are never restarted.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import signal
from dataclasses import dataclass
from typing import List

import aiohttp

from .clients.hub_client import HubClient
from .clients.oauth_client import OAuthClient
from .clients.token_manager import TokenManager
from .clients.youtube_client import SubscriptionsApiClient
from .config import Settings
from .services.action_queue import ActionQueue
from .services.alert_service import AlertService
from .services.credential_store import CredentialStore
from .services.database import Database
from .services.hub_verification import HubVerificationHandler
from .services.known_entities import KnownEntities
from .services.metrics import start_metrics_server
from .services.queue_consumer import QueueConsumer
from .services.reconciler import SubscriptionReconciler
from .services.registry import SubscriptionRegistry
from .services.renewal_scheduler import RenewalScheduler
from .services.wake_signal import WakeSignal

logger = logging.getLogger(__name__)


@dataclass
class Worker:
    """Every long-lived object of a running worker."""

    settings: Settings
    database: Database
    session: aiohttp.ClientSession
    alerts: AlertService
    tokens: TokenManager
    registry: SubscriptionRegistry
    queue: ActionQueue
    known: KnownEntities
    consumer: QueueConsumer
    scheduler: RenewalScheduler
    reconciler: SubscriptionReconciler
    verification: HubVerificationHandler

    @classmethod
    async def build(cls, settings: Settings) -> "Worker":
        database = Database.from_uri(settings.database_url)
        await database.init_db()
        timeout = settings.http_timeout_seconds
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout))

        alerts = AlertService.from_settings(settings)
        oauth = OAuthClient(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_uri,
            auth_uri=settings.oauth_auth_uri,
            token_uri=settings.oauth_token_uri,
            scopes=settings.oauth_scopes,
            session=session,
            timeout=timeout,
        )
        tokens = await TokenManager.create(CredentialStore(database), oauth, alerts)

        wake = WakeSignal()
        registry = SubscriptionRegistry(database)
        queue = ActionQueue(database, wake)
        known = KnownEntities(database)
        hub = HubClient(
            settings.hub_url,
            settings.callback_url,
            settings.feed_base_url,
            session=session,
            timeout=timeout,
        )
        api = SubscriptionsApiClient(settings.subscriptions_api_url, session=session, timeout=timeout)
        return cls(
            settings=settings,
            database=database,
            session=session,
            alerts=alerts,
            tokens=tokens,
            registry=registry,
            queue=queue,
            known=known,
            consumer=QueueConsumer(queue, hub, wake, concurrency=settings.queue_concurrency),
            scheduler=RenewalScheduler(
                registry,
                queue,
                window=dt.timedelta(seconds=settings.refresh_window_seconds),
                delay=dt.timedelta(seconds=settings.refresh_delay_seconds),
                fallback=dt.timedelta(seconds=settings.refresh_fallback_seconds),
            ),
            reconciler=SubscriptionReconciler(
                registry,
                queue,
                known,
                tokens,
                api,
                interval=settings.reconcile_interval_seconds,
            ),
            verification=HubVerificationHandler(registry, settings.feed_base_url),
        )

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run all loops until shutdown or the first failure."""
        tasks: List[asyncio.Task] = [
            asyncio.create_task(self.consumer.run(shutdown), name="queue-consumer"),
            asyncio.create_task(self.scheduler.run(shutdown), name="renewal-scheduler"),
            asyncio.create_task(self.reconciler.run(shutdown), name="reconciler"),
            asyncio.create_task(self.alerts.run(shutdown), name="alerts"),
        ]
        logger.info("Worker started all background tasks")
        stopper = asyncio.create_task(shutdown.wait(), name="shutdown")
        done, _ = await asyncio.wait([*tasks, stopper], return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task is stopper or task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                logger.error("Worker task %s failed", task.get_name(), exc_info=exc)
        shutdown.set()
        results = await asyncio.gather(*tasks, stopper, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, BaseException) and task not in done:
                logger.error("Worker task %s failed during shutdown: %s", task.get_name(), result)

    async def close(self) -> None:
        await self.session.close()
        await self.database.dispose()


async def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    start_metrics_server(settings.prometheus_port)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this platform")

    worker = await Worker.build(settings)
    try:
        await worker.run(shutdown)
    finally:
        await worker.close()
    logger.info("Worker exiting")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
