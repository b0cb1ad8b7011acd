"""In-memory sliding window of status reports."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from sparkmap._constants import DEFAULT_MAX_SIGNAL_AGE_MINUTES, MS_PER_MINUTE
from sparkmap.models.signal import Signal

_logger = logging.getLogger(__name__)


class SignalStore:
    """Append-only collection of signals, grouped by lot.

    Mutation is limited to :meth:`append`, :meth:`remove` (rollback of an
    optimistic append) and :meth:`prune`. Readers always receive copies, so
    a recomputation never observes a half-applied change.
    """

    def __init__(self, signals: Iterable[Signal] = ()) -> None:
        self._by_lot: dict[str, list[Signal]] = {}
        for signal in signals:
            self.append(signal)

    def __len__(self) -> int:
        return sum(len(items) for items in self._by_lot.values())

    def __iter__(self) -> Iterator[Signal]:
        return iter(self.all())

    def append(self, signal: Signal) -> None:
        """Add one signal to the window."""
        self._by_lot.setdefault(signal.lot_id, []).append(signal)

    def remove(self, signal_id: str) -> bool:
        """Drop the signal with *signal_id*. Returns whether it was present."""
        for lot_id, items in self._by_lot.items():
            for index, signal in enumerate(items):
                if signal.id == signal_id:
                    del items[index]
                    if not items:
                        del self._by_lot[lot_id]
                    return True
        return False

    def prune(self, now_ms: int, max_age_minutes: float = DEFAULT_MAX_SIGNAL_AGE_MINUTES) -> int:
        """Remove every signal older than *max_age_minutes*; return how many went."""
        removed = 0
        for lot_id in list(self._by_lot):
            items = self._by_lot[lot_id]
            kept = [s for s in items if (now_ms - s.created_at) / MS_PER_MINUTE <= max_age_minutes]
            removed += len(items) - len(kept)
            if kept:
                self._by_lot[lot_id] = kept
            else:
                del self._by_lot[lot_id]
        if removed:
            _logger.debug("Pruned %d signal(s) older than %s min", removed, max_age_minutes)
        return removed

    def for_lot(self, lot_id: str) -> list[Signal]:
        """Signals currently retained for *lot_id*, in no particular order."""
        return list(self._by_lot.get(lot_id, ()))

    def all(self) -> list[Signal]:
        return [signal for items in self._by_lot.values() for signal in items]
