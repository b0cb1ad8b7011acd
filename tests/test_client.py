from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any

import pytest

from sparkmap.client import SparkClient
from sparkmap.config import SparkConfig
from sparkmap.exceptions import SparkConfigError, SparkError
from sparkmap.feed import ConnectionState, LotFeed
from sparkmap.location import FixedLocationProvider
from sparkmap.models.signal import LotStatus
from sparkmap.models.submission import SubmissionState
from sparkmap.session import ParkingSession
from sparkmap.storage import MemoryKeyValueStore

_LOT_ROWS = [
    {"id": "lot_39", "name": "Lot 39 / MSU Union", "lat": 42.7347, "lng": -84.4802, "lot_current": None},
]


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text


class _FakeHttp:
    """Answers GETs with the lot rows and accepts every POST."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    @contextlib.asynccontextmanager
    async def request(self, method: str, url: str, **_kwargs: Any) -> AsyncIterator[_FakeResponse]:
        self.calls.append((method, url))
        if method == "GET":
            yield _FakeResponse(200, json.dumps(_LOT_ROWS))
        else:
            yield _FakeResponse(201, "")

    async def close(self) -> None:
        self.closed = True


def _config() -> SparkConfig:
    return SparkConfig(supabase_url="https://abc.supabase.co", supabase_anon_key="anon-key")


@pytest.mark.asyncio
async def test_requires_backend_config() -> None:
    with pytest.raises(SparkConfigError):
        async with SparkClient(SparkConfig(), session=_FakeHttp()):  # type: ignore[arg-type]
            pass


@pytest.mark.asyncio
async def test_methods_require_context_manager() -> None:
    client = SparkClient(_config(), session=_FakeHttp())  # type: ignore[arg-type]
    with pytest.raises(SparkError, match="not initialized"):
        await client.load_lots()


@pytest.mark.asyncio
async def test_load_lots_and_submit_through_session() -> None:
    http = _FakeHttp()
    async with SparkClient(_config(), session=http) as client:  # type: ignore[arg-type]
        lots, statuses = await client.load_lots()
        assert [lot.id for lot in lots] == ["lot_39"]
        assert statuses["lot_39"].status is None

        session = client.create_session(
            lots,
            storage=MemoryKeyValueStore(),
            location=FixedLocationProvider(lots[0].point),
        )
        assert isinstance(session, ParkingSession)
        outcome = await session.submit("lot_39", LotStatus.FULL)
        assert outcome.state == SubmissionState.PERSISTED

    assert ("POST", "https://abc.supabase.co/rest/v1/parking_signals") in http.calls
    # Externally provided sessions are left open.
    assert not http.closed


@pytest.mark.asyncio
async def test_create_feed_without_realtime_polls() -> None:
    async with SparkClient(_config(), session=_FakeHttp()) as client:  # type: ignore[arg-type]
        feed = client.create_feed(realtime=False)
        assert isinstance(feed, LotFeed)
        await feed.refresh()
        assert feed.state == ConnectionState.IDLE
        assert [lot.id for lot in feed.lots] == ["lot_39"]
