"""Report sink: persists accepted signals to the backend."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sparkmap._constants import REPORTS_TABLE
from sparkmap._transport import Transport
from sparkmap.models._base import to_iso8601
from sparkmap.models.signal import Signal

_logger = logging.getLogger(__name__)


class ReportSink(Protocol):
    """Anything that can persist a signal; raises on failure."""

    async def insert_report(self, signal: Signal, *, device_id: str | None = None) -> None: ...


def build_report_row(signal: Signal, *, device_id: str | None = None) -> dict[str, Any]:
    """Build the row inserted for *signal*."""
    row: dict[str, Any] = {
        "lot_id": signal.lot_id,
        "status": signal.status.value,
        "source": signal.source.value,
        "recorded_at": to_iso8601(signal.created_at),
    }
    if device_id:
        row["device_id"] = device_id
    return row


class RemoteReportSink:
    """Inserts reports into a backend table through a :class:`Transport`."""

    def __init__(self, transport: Transport, *, table: str = REPORTS_TABLE) -> None:
        self._transport = transport
        self._table = table

    async def insert_report(self, signal: Signal, *, device_id: str | None = None) -> None:
        await self._transport.insert(self._table, build_report_row(signal, device_id=device_id))
        _logger.debug("Persisted signal %s for lot %s", signal.id, signal.lot_id)
