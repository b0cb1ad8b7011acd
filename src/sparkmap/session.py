"""Consensus session: owns the stores, the periodic tick and the gate."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from sparkmap._api.reports import ReportSink
from sparkmap.catalog import lots_by_id
from sparkmap.config import SparkConfig
from sparkmap.gate import ReportGate
from sparkmap.location import LocationProvider
from sparkmap.models.consensus import LotConsensus
from sparkmap.models.lot import Lot
from sparkmap.models.signal import LotStatus, SignalSource
from sparkmap.models.submission import SubmissionOutcome
from sparkmap.state.consensus import ConsensusStore
from sparkmap.state.signals import SignalStore
from sparkmap.storage import KeyValueStore

_logger = logging.getLogger(__name__)

ConsensusListener = Callable[[dict[str, LotConsensus]], None]


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class ParkingSession:
    """Live consensus for a fixed lot catalog.

    Usage::

        async with ParkingSession(lots, sink=sink, storage=storage, location=gps) as session:
            outcome = await session.submit("lot_39", LotStatus.FULL)
            print(session.get("lot_39").status)

    The periodic tick prunes expired signals and recomputes every lot.
    Submissions recompute the affected lot as soon as a signal is
    accepted, and a rolled-back submission restores the lot's previous
    consensus. Both paths run on the same event loop, and only the signal
    store's append/remove/prune mutate the shared window.
    """

    def __init__(
        self,
        lots: Iterable[Lot],
        *,
        sink: ReportSink,
        storage: KeyValueStore,
        location: LocationProvider,
        config: SparkConfig | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config or SparkConfig()
        self._clock = clock
        self._lots = lots_by_id(lots)
        self._signals = SignalStore()
        self._consensus = ConsensusStore(
            self._lots.values(),
            now_ms=clock(),
            settings=self._config.consensus,
        )
        self._gate = ReportGate(
            self._lots,
            self._signals,
            sink=sink,
            storage=storage,
            location=location,
            config=self._config,
            clock=clock,
            consensus=self._consensus,
            on_change=self._on_consensus_changed,
        )
        self._listeners: list[ConsensusListener] = []
        self._tick_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ParkingSession:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def lots(self) -> dict[str, Lot]:
        return dict(self._lots)

    @property
    def signals(self) -> SignalStore:
        return self._signals

    @property
    def gate(self) -> ReportGate:
        return self._gate

    @property
    def is_running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def get(self, lot_id: str) -> LotConsensus:
        return self._consensus.get(lot_id)

    def snapshot(self) -> dict[str, LotConsensus]:
        return self._consensus.snapshot()

    def add_listener(self, listener: ConsensusListener) -> Callable[[], None]:
        """Call *listener* with the snapshot after every recomputation.

        Returns a callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Recomputation
    # ------------------------------------------------------------------

    def _notify(self, snapshot: dict[str, LotConsensus]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.exception("Consensus listener %r failed", listener)

    def tick(self, now_ms: int | None = None) -> dict[str, LotConsensus]:
        """Prune expired signals and recompute every lot."""
        now = self._clock() if now_ms is None else now_ms
        self._signals.prune(now, self._config.consensus.max_age_minutes)
        snapshot = self._consensus.recompute(self._signals, now)
        self._notify(snapshot)
        return snapshot

    def _on_consensus_changed(self, lot_id: str) -> None:
        self._notify(self._consensus.snapshot())

    async def submit(
        self,
        lot_id: str,
        status: LotStatus | str,
        source: SignalSource = SignalSource.POST,
    ) -> SubmissionOutcome:
        """Submit a report through the gate; see :meth:`ReportGate.submit`."""
        return await self._gate.submit(lot_id, status, source)

    async def agree(self, lot_id: str) -> SubmissionOutcome:
        """Confirm the currently displayed status of *lot_id*."""
        return await self._gate.submit(lot_id, self.get(lot_id).status, SignalSource.AGREE)

    # ------------------------------------------------------------------
    # Periodic tick
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic tick on the running event loop."""
        if self.is_running:
            return
        self._tick_task = asyncio.get_running_loop().create_task(self._run_ticks())
        _logger.debug("Consensus tick started interval=%ss", self._config.tick_interval)

    async def stop(self) -> None:
        """Cancel the periodic tick and wait for it to finish."""
        task = self._tick_task
        self._tick_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _logger.debug("Consensus tick stopped")

    async def _run_ticks(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_interval)
            try:
                self.tick()
            except Exception:
                _logger.exception("Consensus tick failed")
