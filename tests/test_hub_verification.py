"""Tests for the hub verification callback handler."""

from __future__ import annotations

import datetime as dt

import pytest

from hubsync.errors import MalformedInboundPayload
from hubsync.models import SubscriptionAction
from hubsync.services.action_queue import ActionQueue
from hubsync.services.hub_verification import MAX_LEASE_SECONDS, HubVerificationHandler
from hubsync.services.registry import SubscriptionRegistry
from hubsync.services.renewal_scheduler import RenewalScheduler
from hubsync.services.wake_signal import WakeSignal
from tests.helpers.fakes import T0, FakeClock

FEED = "https://www.youtube.com/xml/feeds/videos.xml"


def topic(channel_id: str) -> str:
    return f"{FEED}?channel_id={channel_id}"


@pytest.mark.asyncio
async def test_subscribe_confirmation_records_lease(database) -> None:
    registry = SubscriptionRegistry(database)
    handler = HubVerificationHandler(registry, FEED, clock=FakeClock())

    challenge = await handler.handle(
        {
            "hub.mode": "subscribe",
            "hub.topic": topic("UC123"),
            "hub.challenge": "abc123",
            "hub.lease_seconds": "432000",
        }
    )

    assert challenge == "abc123"
    assert (await registry.get("UC123")).expiration == T0 + dt.timedelta(seconds=432000)


@pytest.mark.asyncio
async def test_unsubscribe_confirmation_removes_topic(database) -> None:
    registry = SubscriptionRegistry(database)
    await registry.upsert("UC123", T0)
    handler = HubVerificationHandler(registry, FEED)

    challenge = await handler.handle(
        {"hub.mode": "unsubscribe", "hub.topic": topic("UC123"), "hub.challenge": "bye"}
    )

    assert challenge == "bye"
    assert await registry.all_topic_ids() == set()


@pytest.mark.parametrize(
    "query",
    [
        {},
        {"hub.mode": "denied", "hub.topic": topic("UC1"), "hub.challenge": "x"},
        {"hub.mode": "subscribe", "hub.topic": topic("UC1"), "hub.challenge": "x"},
        {"hub.mode": "subscribe", "hub.topic": topic("UC1"), "hub.challenge": "x", "hub.lease_seconds": "soon"},
        {"hub.mode": "subscribe", "hub.topic": topic("UC1"), "hub.challenge": "x", "hub.lease_seconds": "-5"},
        {"hub.mode": "subscribe", "hub.topic": topic("UC1"), "hub.challenge": "x", "hub.lease_seconds": str(10**12)},
        {"hub.mode": "unsubscribe", "hub.topic": topic("UC1")},
        {"hub.mode": "unsubscribe", "hub.topic": "https://evil.example/feed?channel_id=UC1", "hub.challenge": "x"},
        {"hub.mode": "unsubscribe", "hub.topic": FEED, "hub.challenge": "x"},
    ],
)
@pytest.mark.asyncio
async def test_malformed_requests_never_touch_the_store(query) -> None:
    class ExplodingRegistry:
        async def upsert(self, *args):
            raise AssertionError("registry written")

        async def remove(self, *args):
            raise AssertionError("registry written")

    handler = HubVerificationHandler(ExplodingRegistry(), FEED)
    with pytest.raises(MalformedInboundPayload):
        await handler.handle(query)


@pytest.mark.asyncio
async def test_confirmation_then_scheduler_refreshes_at_threshold(database) -> None:
    clock = FakeClock()
    registry = SubscriptionRegistry(database)
    queue = ActionQueue(database, WakeSignal(), clock=clock)
    handler = HubVerificationHandler(registry, FEED, clock=clock)

    await handler.handle(
        {
            "hub.mode": "subscribe",
            "hub.topic": topic("T"),
            "hub.challenge": "c",
            "hub.lease_seconds": "3600",
        }
    )
    assert (await registry.get("T")).expiration == T0 + dt.timedelta(seconds=3600)

    just_outside = RenewalScheduler(
        registry, queue, window=dt.timedelta(seconds=3700), delay=dt.timedelta(seconds=101), clock=clock
    )
    soonest = await registry.soonest_expiration()
    assert just_outside.compute_sleep(soonest, clock()) == dt.timedelta(seconds=1)

    at_threshold = RenewalScheduler(
        registry, queue, window=dt.timedelta(seconds=3700), delay=dt.timedelta(seconds=100), clock=clock
    )
    assert at_threshold.compute_sleep(soonest, clock()) == dt.timedelta(0)
    assert await at_threshold.enqueue_expiring() == ["T"]
    (pending,) = await queue.pending()
    assert pending.action.kind is SubscriptionAction.REFRESH
    assert pending.active is not None and pending.active.topic_id == "T"


@pytest.mark.asyncio
async def test_longest_accepted_lease_is_stored(database) -> None:
    registry = SubscriptionRegistry(database)
    handler = HubVerificationHandler(registry, FEED, clock=FakeClock())

    await handler.handle(
        {
            "hub.mode": "subscribe",
            "hub.topic": topic("UC9"),
            "hub.challenge": "c",
            "hub.lease_seconds": str(MAX_LEASE_SECONDS),
        }
    )

    assert (await registry.get("UC9")).expiration == T0 + dt.timedelta(seconds=MAX_LEASE_SECONDS)
