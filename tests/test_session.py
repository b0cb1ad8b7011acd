from __future__ import annotations

import asyncio

import pytest

from sparkmap.config import SparkConfig
from sparkmap.exceptions import SparkTransportError, SparkUnknownLotError
from sparkmap.location import FixedLocationProvider
from sparkmap.models.consensus import LotConsensus
from sparkmap.models.lot import Lot
from sparkmap.models.signal import LotStatus, Signal, SignalSource
from sparkmap.models.submission import SubmissionState
from sparkmap.session import ParkingSession
from sparkmap.storage import MemoryKeyValueStore

MINUTE = 60_000

_LOT = Lot(id="L", name="Lot L", lat=42.7275, lng=-84.4788)
_OTHER = Lot(id="M", name="Lot M", lat=42.7190, lng=-84.4830)


class _RecordingSink:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.signals: list[Signal] = []

    async def insert_report(self, signal: Signal, *, device_id: str | None = None) -> None:
        if self.error is not None:
            raise self.error
        self.signals.append(signal)


class _Clock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _make_session(
    clock: _Clock | None = None,
    *,
    sink: _RecordingSink | None = None,
    config: SparkConfig | None = None,
) -> ParkingSession:
    return ParkingSession(
        [_LOT, _OTHER],
        sink=sink or _RecordingSink(),
        storage=MemoryKeyValueStore(),
        location=FixedLocationProvider(_LOT.point),
        config=config,
        clock=clock or _Clock(),
    )


def test_end_to_end_scenario() -> None:
    session = _make_session()

    initial = session.get("L")
    assert initial.status == LotStatus.OPEN
    assert initial.confidence == 0.25

    session.signals.append(Signal(id="s1", lot_id="L", status=LotStatus.FULL, created_at=0))

    first = session.tick(0)["L"]
    assert first.status == LotStatus.OPEN
    assert first.pending is not None
    assert first.pending.status == LotStatus.FULL

    second = session.tick(30_000)["L"]
    assert second.status == LotStatus.FULL
    assert second.updated_at == 30_000
    assert second.pending is None

    third = session.tick(190 * MINUTE)["L"]
    assert third.status == LotStatus.FULL
    assert third.updated_at == 30_000
    assert third.confidence == 0.25
    assert third.pending is None
    assert len(session.signals) == 0


def test_tick_notifies_listeners_until_removed() -> None:
    session = _make_session()
    seen: list[dict[str, LotConsensus]] = []
    remove = session.add_listener(seen.append)

    session.tick(0)
    remove()
    session.tick(1_000)

    assert len(seen) == 1
    assert set(seen[0]) == {"L", "M"}


def test_failing_listener_does_not_break_tick() -> None:
    session = _make_session()
    seen: list[dict[str, LotConsensus]] = []

    def _boom(_snapshot: dict[str, LotConsensus]) -> None:
        raise RuntimeError("listener failure")

    session.add_listener(_boom)
    session.add_listener(seen.append)
    session.tick(0)

    assert len(seen) == 1


def test_get_unknown_lot_raises() -> None:
    with pytest.raises(SparkUnknownLotError):
        _make_session().get("Z")


@pytest.mark.asyncio
async def test_submit_recomputes_affected_lot_immediately() -> None:
    clock = _Clock(0)
    session = _make_session(clock)
    seen: list[dict[str, LotConsensus]] = []
    session.add_listener(seen.append)

    outcome = await session.submit("L", LotStatus.FULL)

    assert outcome.state == SubmissionState.PERSISTED
    assert seen
    pending = session.get("L").pending
    assert pending is not None
    assert pending.status == LotStatus.FULL

    clock.now = 30_000
    assert session.tick()["L"].status == LotStatus.FULL


@pytest.mark.asyncio
async def test_agree_confirms_displayed_status() -> None:
    sink = _RecordingSink()
    session = _make_session(sink=sink)

    outcome = await session.agree("L")

    assert outcome.state == SubmissionState.PERSISTED
    assert sink.signals[0].status == LotStatus.OPEN
    assert sink.signals[0].source == SignalSource.AGREE


@pytest.mark.asyncio
async def test_periodic_tick_runs_between_start_and_stop() -> None:
    session = _make_session(config=SparkConfig(tick_interval=0.01))
    ticked = asyncio.Event()
    session.add_listener(lambda _snapshot: ticked.set())

    async with session:
        assert session.is_running
        await asyncio.wait_for(ticked.wait(), timeout=1.0)

    assert not session.is_running


def _pending_full_session(clock: _Clock) -> ParkingSession:
    session = _make_session(clock, sink=_RecordingSink(error=SparkTransportError("HTTP 503", status_code=503)))
    session.signals.append(Signal(id="foreign", lot_id="L", status=LotStatus.FULL, created_at=0))
    session.tick(0)
    return session


@pytest.mark.asyncio
async def test_rolled_back_submit_restores_previous_consensus() -> None:
    clock = _Clock(0)
    session = _pending_full_session(clock)
    before = session.get("L")
    assert before.status == LotStatus.OPEN
    assert before.pending is not None
    assert before.pending.seen_at == 0

    clock.now = 1_000
    outcome = await session.submit("L", LotStatus.FULL)

    assert outcome.state == SubmissionState.ROLLED_BACK
    after = session.get("L")
    assert after.status == before.status
    assert after.pending == before.pending
    assert after.updated_at == before.updated_at
    assert [s.id for s in session.signals] == ["foreign"]


@pytest.mark.asyncio
async def test_repeated_rollbacks_keep_pending_since() -> None:
    clock = _Clock(0)
    session = _pending_full_session(clock)
    seen: list[dict[str, LotConsensus]] = []
    session.add_listener(seen.append)

    for now in (1_000, 2_000):
        clock.now = now
        outcome = await session.submit("L", LotStatus.FULL)
        assert outcome.state == SubmissionState.ROLLED_BACK

    pending = session.get("L").pending
    assert pending is not None
    assert pending.seen_at == 0
    assert session.get("L").status == LotStatus.OPEN
    assert seen

    # The next real tick still confirms from the original first sighting.
    assert session.tick(30_000)["L"].status == LotStatus.FULL
