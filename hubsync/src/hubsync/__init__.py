"""
hubsync: keeps PubSubHubbub subscriptions for a YouTube account's
subscribed channels in step with the account's subscription list.

The worker runs four long-lived loops (queue consumer, renewal
scheduler, reconciliation loop and alert delivery) started by
``hubsync.worker_main``.  The web front end embeds the same objects to
answer hub verification callbacks and to install new OAuth consent.
"""

__version__ = "0.1.0"
