"""Per-lot consensus snapshots.

This is the only component allowed to replace a lot's consensus entry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sparkmap.config import ConsensusSettings
from sparkmap.exceptions import SparkUnknownLotError
from sparkmap.models.consensus import LotConsensus
from sparkmap.models.lot import Lot
from sparkmap.state.policy import compute_consensus
from sparkmap.state.signals import SignalStore

_logger = logging.getLogger(__name__)


class ConsensusStore:
    """One :class:`LotConsensus` per known lot, recomputed from the signal window.

    Entries are created for every lot at construction time and live for the
    lifetime of the store. Given the same prior state, signals and clock
    value, :meth:`recompute` produces the same snapshot.
    """

    def __init__(
        self,
        lots: Iterable[Lot],
        *,
        now_ms: int,
        settings: ConsensusSettings | None = None,
    ) -> None:
        self._settings = settings or ConsensusSettings()
        self._entries: dict[str, LotConsensus] = {
            lot.id: LotConsensus.initial(now_ms, confidence_floor=self._settings.confidence_floor) for lot in lots
        }

    @property
    def lot_ids(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, lot_id: object) -> bool:
        return lot_id in self._entries

    def get(self, lot_id: str) -> LotConsensus:
        try:
            return self._entries[lot_id]
        except KeyError:
            raise SparkUnknownLotError(lot_id) from None

    def snapshot(self) -> dict[str, LotConsensus]:
        """Current consensus of every lot (entries are immutable)."""
        return dict(self._entries)

    def recompute_lot(self, lot_id: str, signals: SignalStore, now_ms: int) -> LotConsensus:
        """Recompute a single lot from its retained signals."""
        prior = self.get(lot_id)
        current = compute_consensus(prior, signals.for_lot(lot_id), now_ms, self._settings)
        self._entries[lot_id] = current

        if current.status != prior.status:
            _logger.info(
                "Lot %s status %s -> %s (confidence=%.2f)",
                lot_id,
                prior.status,
                current.status,
                current.confidence,
            )
        elif current.pending is not None and current.pending != prior.pending:
            _logger.debug("Lot %s pending transition to %s", lot_id, current.pending.status)
        return current

    def restore(self, lot_id: str, prior: LotConsensus, *, expected: LotConsensus) -> bool:
        """Put *prior* back, but only while *expected* is still the current entry.

        Returns ``False`` (and leaves the entry alone) when another
        recomputation has replaced *expected* in the meantime.
        """
        if self.get(lot_id) is not expected:
            _logger.debug("Lot %s recomputed since %s; not restoring", lot_id, expected.status)
            return False
        self._entries[lot_id] = prior
        return True

    def recompute(self, signals: SignalStore, now_ms: int) -> dict[str, LotConsensus]:
        """Recompute every known lot and return the new snapshot."""
        for lot_id in self._entries:
            self.recompute_lot(lot_id, signals, now_ms)
        return self.snapshot()
