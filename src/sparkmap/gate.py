"""Report submission gate.

A candidate report has to pass two independent checks before it becomes
a signal:

- cooldown: the same device may report on the same lot at most once per
  ``cooldown_minutes`` (tracked in local key-value storage);
- presence: the device must be within ``max_distance_meters`` of the lot.

Accepted signals are appended optimistically so the consensus reacts at
once, then persisted remotely. A failed insert is compensated through
:meth:`Submission.rollback` when ``rollback_on_persist_failure`` is set.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping

from sparkmap._api.reports import ReportSink
from sparkmap._constants import MS_PER_MINUTE, cooldown_key
from sparkmap.config import SparkConfig
from sparkmap.exceptions import (
    LocationUnavailableError,
    OnCooldownError,
    OutOfRangeError,
    PermissionDeniedError,
    PersistenceFailureError,
    SparkError,
    SparkUnknownLotError,
    SubmissionError,
    UnknownSubmissionError,
)
from sparkmap.geo import distance_meters
from sparkmap.location import LocationProvider, PermissionStatus
from sparkmap.models.consensus import LotConsensus
from sparkmap.models.lot import GeoPoint, Lot
from sparkmap.models.signal import LotStatus, Signal, SignalSource
from sparkmap.models.submission import SubmissionOutcome, SubmissionState
from sparkmap.state.consensus import ConsensusStore
from sparkmap.state.signals import SignalStore
from sparkmap.storage import KeyValueStore, get_device_id

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def format_remaining(remaining_ms: int) -> str:
    """Render a remaining duration as ``MM:SS``, rounding seconds up."""
    total_seconds = max(0, math.ceil(remaining_ms / 1000))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class Submission:
    """Optimistic append of one signal, undone by a single :meth:`rollback`.

    Records what it changed before changing it, so every caller shares the
    same compensation logic. With a *consensus* store the affected lot is
    recomputed on :meth:`apply`, and :meth:`rollback` puts the lot's prior
    consensus back instead of recomputing, so a failed report never counts
    as a confirmation step.
    """

    def __init__(
        self,
        signals: SignalStore,
        signal: Signal,
        *,
        consensus: ConsensusStore | None = None,
        on_change: Callable[[str], None] | None = None,
    ) -> None:
        self._signals = signals
        self._signal = signal
        self._consensus = consensus
        self._on_change = on_change
        self._state = SubmissionState.IDLE
        self._prior: LotConsensus | None = None
        self._applied: LotConsensus | None = None

    @property
    def signal(self) -> Signal:
        return self._signal

    @property
    def state(self) -> SubmissionState:
        return self._state

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._signal.lot_id)

    def apply(self) -> None:
        """Append the signal to the local window and recompute its lot."""
        if self._state != SubmissionState.IDLE:
            raise RuntimeError(f"cannot apply a submission in state {self._state}")
        lot_id = self._signal.lot_id
        if self._consensus is not None:
            self._prior = self._consensus.get(lot_id)
        self._signals.append(self._signal)
        if self._consensus is not None:
            self._applied = self._consensus.recompute_lot(lot_id, self._signals, self._signal.created_at)
        self._state = SubmissionState.ACCEPTED
        self._notify()

    def commit(self) -> None:
        """Mark the signal as durably accepted."""
        if self._state != SubmissionState.ACCEPTED:
            raise RuntimeError(f"cannot commit a submission in state {self._state}")
        self._state = SubmissionState.PERSISTED

    def rollback(self) -> bool:
        """Remove the optimistic signal again. Returns whether anything changed."""
        if self._state != SubmissionState.ACCEPTED:
            return False
        removed = self._signals.remove(self._signal.id)
        if self._consensus is not None and self._prior is not None and self._applied is not None:
            self._consensus.restore(self._signal.lot_id, self._prior, expected=self._applied)
        self._state = SubmissionState.ROLLED_BACK
        if removed:
            self._notify()
        return removed


class ReportGate:
    """Validates, records and persists status reports for known lots."""

    def __init__(
        self,
        lots: Mapping[str, Lot],
        signals: SignalStore,
        *,
        sink: ReportSink,
        storage: KeyValueStore,
        location: LocationProvider,
        config: SparkConfig | None = None,
        clock: Callable[[], int] = _now_ms,
        consensus: ConsensusStore | None = None,
        on_change: Callable[[str], None] | None = None,
    ) -> None:
        self._lots = lots
        self._signals = signals
        self._consensus = consensus
        self._sink = sink
        self._storage = storage
        self._location = location
        self._config = config or SparkConfig()
        self._clock = clock
        self._on_change = on_change
        self._locks: dict[str, asyncio.Lock] = {}
        self._in_flight: dict[str, SubmissionState] = {}

    def _lock_for(self, lot_id: str) -> asyncio.Lock:
        lock = self._locks.get(lot_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lot_id] = lock
        return lock

    def submission_state(self, lot_id: str) -> SubmissionState:
        """Stage of the submission currently running for *lot_id* (``IDLE`` if none)."""
        return self._in_flight.get(lot_id, SubmissionState.IDLE)

    def _enter(self, lot_id: str, state: SubmissionState) -> None:
        _logger.debug("Submission for lot %s: %s", lot_id, state)
        self._in_flight[lot_id] = state

    def _require_lot(self, lot_id: str) -> Lot:
        lot = self._lots.get(lot_id)
        if lot is None:
            raise SparkUnknownLotError(lot_id)
        return lot

    # ------------------------------------------------------------------
    # Cooldown
    # ------------------------------------------------------------------

    async def cooldown_remaining(self, lot_id: str, now_ms: int | None = None) -> int:
        """Milliseconds until the next report for *lot_id* is allowed (0 if none)."""
        now = self._clock() if now_ms is None else now_ms
        stored = await self._storage.get(cooldown_key(lot_id))
        if not stored:
            return 0
        try:
            next_allowed = int(float(stored))
        except ValueError:
            _logger.debug("Ignoring unparseable cooldown value for lot %s: %r", lot_id, stored)
            return 0
        return max(0, next_allowed - now)

    async def _check_cooldown(self, lot_id: str, now_ms: int) -> None:
        remaining = await self.cooldown_remaining(lot_id, now_ms)
        if remaining > 0:
            raise OnCooldownError(
                f"Please wait {format_remaining(remaining)} before reporting again.",
                remaining_ms=remaining,
            )

    async def _start_cooldown(self, lot_id: str, now_ms: int) -> None:
        next_allowed = now_ms + int(self._config.cooldown_minutes * MS_PER_MINUTE)
        await self._storage.set(cooldown_key(lot_id), str(next_allowed))

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def _check_presence(self, lot: Lot) -> GeoPoint:
        permission = await self._location.request_permission()
        if permission != PermissionStatus.GRANTED:
            raise PermissionDeniedError("Location permission is required to submit a report.")
        try:
            here = await self._location.get_current_position()
        except LocationUnavailableError as exc:
            raise PermissionDeniedError("Could not determine your location.") from exc

        radius = self._config.max_distance_meters
        distance = distance_meters(here, lot)
        if distance > radius:
            raise OutOfRangeError(
                f"You must be within {radius:.0f} meters of this lot to report its status.",
                distance_meters=distance,
                radius_meters=radius,
            )
        return here

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        lot_id: str,
        status: LotStatus | str,
        source: SignalSource = SignalSource.POST,
    ) -> SubmissionOutcome:
        """Run one report through the gate.

        Never raises for user-facing failures; inspect
        :attr:`SubmissionOutcome.state` and :attr:`SubmissionOutcome.error`.
        Attempts for the same lot are serialized, so a second attempt only
        consults the cooldown once the first has resolved.
        """
        lot = self._require_lot(lot_id)
        parsed = LotStatus.parse(status)
        if parsed is None:
            raise ValueError(f"unknown lot status: {status!r}")

        async with self._lock_for(lot.id):
            return await self._submit_locked(lot, parsed, SignalSource(source))

    def _outcome(
        self,
        state: SubmissionState,
        lot: Lot,
        status: LotStatus,
        message: str,
        *,
        signal: Signal | None = None,
        error: SubmissionError | None = None,
    ) -> SubmissionOutcome:
        return SubmissionOutcome(
            state=state,
            lot_id=lot.id,
            status=status,
            message=message,
            signal=signal,
            error=error,
        )

    async def _submit_locked(self, lot: Lot, status: LotStatus, source: SignalSource) -> SubmissionOutcome:
        try:
            return await self._run_submission(lot, status, source)
        finally:
            self._in_flight.pop(lot.id, None)

    async def _run_submission(self, lot: Lot, status: LotStatus, source: SignalSource) -> SubmissionOutcome:
        submission: Submission | None = None
        try:
            self._enter(lot.id, SubmissionState.VALIDATING_COOLDOWN)
            await self._check_cooldown(lot.id, self._clock())
            self._enter(lot.id, SubmissionState.VALIDATING_LOCATION)
            await self._check_presence(lot)

            signal = Signal.new(lot.id, status, now_ms=self._clock(), source=source)
            submission = Submission(self._signals, signal, consensus=self._consensus, on_change=self._on_change)
            submission.apply()
            self._enter(lot.id, SubmissionState.ACCEPTED)
            _logger.debug("Accepted signal %s (%s) for lot %s", signal.id, status, lot.id)

            device_id = await get_device_id(self._storage)
            try:
                await self._sink.insert_report(signal, device_id=device_id)
            except SparkError as exc:
                return await self._persist_failed(submission, lot, exc)

            submission.commit()
            await self._start_cooldown(lot.id, signal.created_at)
            return self._outcome(
                SubmissionState.PERSISTED,
                lot,
                status,
                f"Reported {status.label}.",
                signal=signal,
            )
        except SubmissionError as exc:
            _logger.debug("Rejected report for lot %s: %s", lot.id, exc)
            return self._outcome(SubmissionState.REJECTED, lot, status, str(exc), error=exc)
        except asyncio.CancelledError:
            if submission is not None:
                submission.rollback()
            raise
        except Exception as exc:
            _logger.exception("Unexpected failure while submitting report for lot %s", lot.id)
            state = SubmissionState.REJECTED
            if submission is not None and submission.rollback():
                state = SubmissionState.ROLLED_BACK
            error = UnknownSubmissionError(f"Something went wrong while submitting your report: {exc}")
            return self._outcome(
                state,
                lot,
                status,
                "Something went wrong while submitting your report.",
                error=error,
            )

    async def _persist_failed(self, submission: Submission, lot: Lot, exc: SparkError) -> SubmissionOutcome:
        signal = submission.signal
        _logger.warning("Report insert failed for lot %s: %s", lot.id, exc)
        error = PersistenceFailureError(f"Report for lot {lot.id} could not be saved: {exc}")

        if self._config.rollback_on_persist_failure:
            submission.rollback()
            return self._outcome(
                SubmissionState.ROLLED_BACK,
                lot,
                signal.status,
                "Unable to submit report right now. Please try again.",
                error=error,
            )

        submission.commit()
        await self._start_cooldown(lot.id, signal.created_at)
        return self._outcome(
            SubmissionState.PERSISTED,
            lot,
            signal.status,
            f"Reported {signal.status.label}, but it could not be shared right now.",
            signal=signal,
            error=error,
        )
