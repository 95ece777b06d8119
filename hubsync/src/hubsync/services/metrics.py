"""
Metrics
=======

Prometheus instruments shared by the background services.  They are
module level so every service (and every test) updates the same
collectors; ``start_metrics_server`` exposes them over HTTP.

Metrics
-------

* ``hubsync_queue_actions_total{kind,outcome}`` – queue actions processed,
  ``outcome`` is ``ok`` or ``error``.
* ``hubsync_queue_pending`` – pending actions seen by the last drain.
* ``hubsync_reconcile_ticks_total{result}`` – reconciliation ticks by result
  (``updated``, ``not_modified``, ``failed``).
* ``hubsync_refresh_enqueued_total`` – refresh actions queued by the
  renewal scheduler.
* ``hubsync_alerts_total`` – alerts handed to the alert service.
* ``hubsync_token_refresh_total{result}`` – OAuth refresh attempts.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

QUEUE_ACTIONS = Counter(
    "hubsync_queue_actions_total",
    "Subscription queue actions processed",
    labelnames=["kind", "outcome"],
)
QUEUE_PENDING = Gauge(
    "hubsync_queue_pending",
    "Pending subscription queue actions at the start of the last drain",
)
RECONCILE_TICKS = Counter(
    "hubsync_reconcile_ticks_total",
    "Reconciliation ticks by result",
    labelnames=["result"],
)
REFRESH_ENQUEUED = Counter(
    "hubsync_refresh_enqueued_total",
    "Refresh actions queued by the renewal scheduler",
)
ALERTS_SENT = Counter(
    "hubsync_alerts_total",
    "Alerts handed to the alert service",
)
TOKEN_REFRESHES = Counter(
    "hubsync_token_refresh_total",
    "OAuth access token refresh attempts",
    labelnames=["result"],
)


def start_metrics_server(port: int) -> bool:
    """Expose the default registry on ``port``.  Returns ``False`` if it could not bind."""
    try:
        start_http_server(port)
    except OSError as exc:
        logger.warning("Failed to start Prometheus server on port %d: %s", port, exc)
        return False
    logger.info("Prometheus metrics exposed on port %d", port)
    return True
