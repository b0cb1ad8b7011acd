"""Tests for the server status feed and its realtime/polling switch."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from sparkmap.exceptions import SparkTransportError
from sparkmap.feed import ConnectionState, LotFeed
from sparkmap.models.lot import Lot, ServerLotStatus
from sparkmap.models.signal import LotStatus

_LOT = Lot(id="lot_39", name="Lot 39", lat=42.7347, lng=-84.4802)


class _Fetcher:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    async def __call__(self) -> tuple[list[Lot], dict[str, ServerLotStatus]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [_LOT], {_LOT.id: ServerLotStatus(lot_id=_LOT.id, status="OPEN", confidence=0.4)}


class _FakePush:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.runs = 0
        self.started = asyncio.Event()
        self.finish = asyncio.Event()
        self.on_change: Callable[[ServerLotStatus], None] | None = None
        self.on_subscribed: Callable[[bool], None] | None = None

    async def run(
        self,
        on_change: Callable[[ServerLotStatus], None],
        on_subscribed: Callable[[bool], None],
    ) -> None:
        self.runs += 1
        self.on_change = on_change
        self.on_subscribed = on_subscribed
        self.started.set()
        if self.error is not None:
            raise self.error
        await self.finish.wait()


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_starts_in_polling_and_fetches_immediately() -> None:
    fetch = _Fetcher()
    feed = LotFeed(fetch, poll_interval=60.0)
    assert feed.state == ConnectionState.IDLE

    async with feed:
        await _settle()
        assert feed.state == ConnectionState.POLLING
        assert fetch.calls == 1
        assert [lot.id for lot in feed.lots] == [_LOT.id]
        assert feed.statuses[_LOT.id].status == LotStatus.OPEN

    assert feed.state == ConnectionState.IDLE


@pytest.mark.asyncio
async def test_polls_repeatedly_without_push() -> None:
    fetch = _Fetcher()
    async with LotFeed(fetch, poll_interval=0.01):
        await asyncio.sleep(0.1)
    assert fetch.calls >= 2


@pytest.mark.asyncio
async def test_switches_between_live_and_polling() -> None:
    fetch = _Fetcher()
    push = _FakePush()
    feed = LotFeed(fetch, push, poll_interval=60.0)

    async with feed:
        await asyncio.wait_for(push.started.wait(), timeout=1.0)
        await _settle()
        assert fetch.calls == 1
        assert push.on_subscribed is not None

        push.on_subscribed(True)
        await _settle()
        assert feed.state == ConnectionState.LIVE
        # Catch-up fetch after subscribing.
        assert fetch.calls == 2

        push.on_subscribed(False)
        await _settle()
        assert feed.state == ConnectionState.POLLING
        assert fetch.calls == 3


@pytest.mark.asyncio
async def test_push_change_updates_known_lot() -> None:
    fetch = _Fetcher()
    push = _FakePush()
    feed = LotFeed(fetch, push, poll_interval=60.0)
    updates: list[dict[str, ServerLotStatus]] = []
    feed.add_listener(updates.append)

    async with feed:
        await asyncio.wait_for(push.started.wait(), timeout=1.0)
        await _settle()
        assert push.on_change is not None and push.on_subscribed is not None
        push.on_subscribed(True)
        await _settle()
        calls = fetch.calls

        push.on_change(ServerLotStatus(lot_id=_LOT.id, status="FULL", confidence=0.9))
        assert feed.statuses[_LOT.id].status == LotStatus.FULL
        assert updates[-1][_LOT.id].confidence == 0.9

        push.on_change(ServerLotStatus(lot_id="lot_new", status="OPEN"))
        await _settle()
        assert fetch.calls == calls + 1


@pytest.mark.asyncio
async def test_push_events_postpone_the_next_poll() -> None:
    fetch = _Fetcher()
    push = _FakePush()
    feed = LotFeed(fetch, push, poll_interval=0.2)

    async with feed:
        await asyncio.wait_for(push.started.wait(), timeout=1.0)
        await _settle()
        assert feed.state == ConnectionState.POLLING
        assert fetch.calls == 1
        assert push.on_change is not None

        for confidence in (0.5, 0.6, 0.7, 0.8, 0.9, 1.0):
            await asyncio.sleep(0.05)
            push.on_change(ServerLotStatus(lot_id=_LOT.id, status="FULL", confidence=confidence))

        assert fetch.calls == 1


@pytest.mark.asyncio
async def test_push_repeating_polled_status_does_not_fire_listeners() -> None:
    fetch = _Fetcher()
    push = _FakePush()
    feed = LotFeed(fetch, push, poll_interval=60.0)
    updates: list[dict[str, ServerLotStatus]] = []
    feed.add_listener(updates.append)

    async with feed:
        await asyncio.wait_for(push.started.wait(), timeout=1.0)
        await _settle()
        assert push.on_change is not None
        assert len(updates) == 1

        push.on_change(ServerLotStatus(lot_id=_LOT.id, status="OPEN", confidence=0.4))
        assert len(updates) == 1

        push.on_change(ServerLotStatus(lot_id=_LOT.id, status="OPEN", confidence=0.5))
        assert len(updates) == 2
        assert feed.statuses[_LOT.id].confidence == 0.5


@pytest.mark.asyncio
async def test_failed_refresh_is_recorded_and_cleared() -> None:
    fetch = _Fetcher(error=SparkTransportError("HTTP 500", status_code=500))
    feed = LotFeed(fetch, poll_interval=60.0)

    async with feed:
        await _settle()
        assert isinstance(feed.last_error, SparkTransportError)
        assert feed.state == ConnectionState.POLLING

        fetch.error = None
        await feed.refresh()
        assert feed.last_error is None


@pytest.mark.asyncio
async def test_push_listener_reconnects_after_failure() -> None:
    fetch = _Fetcher()
    push = _FakePush(error=SparkTransportError("Realtime connection failed"))
    feed = LotFeed(fetch, push, poll_interval=60.0, reconnect_delay=0.01)

    async with feed:
        await asyncio.sleep(0.1)
        assert push.runs >= 2
        assert feed.state == ConnectionState.POLLING
