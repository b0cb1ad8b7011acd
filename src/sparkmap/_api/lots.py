"""Lot catalog and server-side status reader."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from sparkmap._constants import LOTS_SELECT, LOTS_TABLE
from sparkmap._transport import Transport
from sparkmap.models.lot import Lot, ServerLotStatus

_logger = logging.getLogger(__name__)


def _normalize_lot_current(value: Any) -> dict[str, Any] | None:
    """``lot_current`` arrives as null, an object, or a one-element list."""
    if not value:
        return None
    if isinstance(value, list):
        first = value[0]
        return first if isinstance(first, dict) else None
    if isinstance(value, dict):
        return value
    return None


def parse_lot_rows(rows: Iterable[dict[str, Any]]) -> tuple[list[Lot], dict[str, ServerLotStatus]]:
    """Split joined lot rows into the catalog and the server status per lot.

    Rows that fail validation are logged and skipped.
    """
    lots: list[Lot] = []
    statuses: dict[str, ServerLotStatus] = {}
    for row in rows:
        try:
            lot = Lot.model_validate(row)
        except ValidationError:
            _logger.debug("Skipping malformed lot row id=%s", row.get("id"), exc_info=True)
            continue
        lots.append(lot)
        current = _normalize_lot_current(row.get("lot_current")) or {}
        statuses[lot.id] = ServerLotStatus(
            lot_id=lot.id,
            status=current.get("status"),
            confidence=current.get("confidence"),
        )
    return lots, statuses


async def fetch_lots(
    transport: Transport,
    *,
    table: str = LOTS_TABLE,
) -> tuple[list[Lot], dict[str, ServerLotStatus]]:
    """Fetch the lot catalog joined with the server-side current status."""
    rows = await transport.select(table, {"select": LOTS_SELECT, "order": "name.asc"})
    return parse_lot_rows(rows)
