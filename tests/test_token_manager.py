"""Tests for the TokenManager state machine.

These tests drive the manager with a scripted OAuth client and a real
SQLite-backed credential store, and check that every transition is
persisted, that alerts go out once per demotion, and that waiters block
until a credential is installed.
"""

from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from hubsync.clients.token_manager import TokenManager
from hubsync.errors import ExchangeError
from hubsync.models import Credential, TokenMissing, TokenPresent
from hubsync.services.credential_store import CredentialStore
from tests.helpers.fakes import FakeClock, FakeNotifier, FakeOAuthClient


async def settle() -> None:
    # Store writes go through aiosqlite's worker thread.
    await asyncio.sleep(0.05)


async def make_manager(database, clock, oauth, credential=None):
    store = CredentialStore(database)
    if credential is not None:
        await store.save(credential)
    notifier = FakeNotifier()
    manager = await TokenManager.create(store, oauth, notifier, clock=clock)
    return manager, store, notifier


@pytest.mark.asyncio
async def test_create_without_credential_is_missing(database) -> None:
    clock = FakeClock()
    manager, _, notifier = await make_manager(database, clock, FakeOAuthClient(clock))
    assert manager.status == TokenMissing(alerted=False)
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_valid_credential_returned_without_refresh(database) -> None:
    clock = FakeClock()
    oauth = FakeOAuthClient(clock)
    credential = Credential(
        access_token="live", refresh_token="r", expires_at=clock() + dt.timedelta(minutes=5)
    )
    manager, _, _ = await make_manager(database, clock, oauth, credential)
    assert isinstance(manager.status, TokenPresent)
    assert await manager.wait_for_token() == "live"
    assert oauth.refresh_calls == 0


@pytest.mark.asyncio
async def test_expired_credential_is_refreshed_and_persisted(database) -> None:
    clock = FakeClock()
    oauth = FakeOAuthClient(clock)
    stale = Credential(access_token="old", refresh_token="r", expires_at=clock())
    manager, store, notifier = await make_manager(database, clock, oauth, stale)

    token = await manager.wait_for_token()

    assert token == "access-refreshed-1"
    assert oauth.refresh_calls == 1
    saved = await store.load()
    assert saved is not None and saved.access_token == token
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_concurrent_waiters_trigger_exactly_one_alert(database) -> None:
    clock = FakeClock()
    manager, _, notifier = await make_manager(database, clock, FakeOAuthClient(clock))

    first = asyncio.create_task(manager.wait_for_token())
    await settle()
    assert manager.status == TokenMissing(alerted=True)
    second = asyncio.create_task(manager.wait_for_token())
    await settle()

    assert len(notifier.messages) == 1
    assert notifier.messages[0].link == "https://accounts.example/consent"
    assert not first.done() and not second.done()

    await manager.load_new_token("consent-code")
    results = await asyncio.wait_for(asyncio.gather(first, second), timeout=1)
    assert results == ["access-consent-code", "access-consent-code"]
    assert len(notifier.messages) == 1


@pytest.mark.asyncio
async def test_refresh_failure_demotes_and_alerts_once(database) -> None:
    clock = FakeClock()
    oauth = FakeOAuthClient(clock, refresh_error=True)
    stale = Credential(access_token="old", refresh_token="r", expires_at=clock() - dt.timedelta(minutes=1))
    manager, store, notifier = await make_manager(database, clock, oauth, stale)

    waiter = asyncio.create_task(manager.wait_for_token())
    await settle()

    assert oauth.refresh_calls == 1
    assert manager.status == TokenMissing(alerted=True)
    assert await store.load() is None
    assert len(notifier.messages) == 1
    assert not waiter.done()

    await manager.load_new_token("again")
    assert await asyncio.wait_for(waiter, timeout=1) == "access-again"
    assert (await store.load()).access_token == "access-again"


@pytest.mark.asyncio
async def test_alert_sent_again_after_a_later_demotion(database) -> None:
    clock = FakeClock()
    oauth = FakeOAuthClient(clock)
    manager, _, notifier = await make_manager(database, clock, oauth)

    waiter = asyncio.create_task(manager.wait_for_token())
    await settle()
    await manager.load_new_token("one")
    await asyncio.wait_for(waiter, timeout=1)

    clock.advance(hours=2)
    oauth.refresh_error = True
    waiter = asyncio.create_task(manager.wait_for_token())
    await settle()

    assert len(notifier.messages) == 2
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter


@pytest.mark.asyncio
async def test_failed_exchange_leaves_state_untouched(database) -> None:
    clock = FakeClock()
    oauth = FakeOAuthClient(clock, exchange_error=True)
    manager, store, _ = await make_manager(database, clock, oauth)

    with pytest.raises(ExchangeError):
        await manager.load_new_token("bad-code")

    assert manager.status == TokenMissing(alerted=False)
    assert await store.load() is None


@pytest.mark.asyncio
async def test_concurrent_refreshes_are_not_coalesced(database) -> None:
    clock = FakeClock()
    gate = asyncio.Event()
    oauth = FakeOAuthClient(clock, gate=gate)
    stale = Credential(access_token="old", refresh_token="r", expires_at=clock())
    manager, store, _ = await make_manager(database, clock, oauth, stale)

    waiters = [asyncio.create_task(manager.wait_for_token()) for _ in range(2)]
    await settle()
    assert oauth.refresh_calls == 2

    gate.set()
    first, second = await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)
    assert first == second
    assert (await store.load()).access_token == first
