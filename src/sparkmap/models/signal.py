"""Status reports ("signals") and the status vocabulary."""

from __future__ import annotations

import enum
import secrets
from typing import Any

from pydantic import field_validator

from sparkmap._constants import MS_PER_MINUTE
from sparkmap.models._base import SparkBaseModel

# Four-valued vocabulary used by older clients, folded onto the canonical three.
_LEGACY_STATUS_MAP: dict[str, str] = {
    "empty": "OPEN",
    "open": "OPEN",
    "filling": "FILLING",
    "tight": "FULL",
    "full": "FULL",
}


class LotStatus(enum.StrEnum):
    """Displayed occupancy of a lot.

    Declaration order doubles as the tie-break order when ranking weights.
    """

    OPEN = "OPEN"
    FILLING = "FILLING"
    FULL = "FULL"

    @classmethod
    def _missing_(cls, value: object) -> LotStatus | None:
        if isinstance(value, str):
            mapped = _LEGACY_STATUS_MAP.get(value.strip().lower())
            if mapped is not None:
                return cls(mapped)
        return None

    @classmethod
    def parse(cls, value: Any) -> LotStatus | None:
        """Return the matching status, or ``None`` for anything unrecognised."""
        if isinstance(value, LotStatus):
            return value
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        return self.value.capitalize()


class SignalSource(enum.StrEnum):
    """How a report was produced. Carried for analytics only."""

    POST = "post"
    AGREE = "agree"
    UPDATE = "update"


class Signal(SparkBaseModel):
    """One timestamped status report for a lot.

    Parameters
    ----------
    id : str
        Unique identifier.
    lot_id : str
        Lot the report is about.
    status : LotStatus
        Reported status.
    created_at : int
        Epoch milliseconds at which the report was accepted.
    source : SignalSource
        Provenance tag.
    """

    id: str
    lot_id: str
    status: LotStatus
    created_at: int
    source: SignalSource = SignalSource.POST

    @field_validator("lot_id", mode="before")
    @classmethod
    def _coerce_lot_id(cls, value: Any) -> str:
        return str(value)

    @classmethod
    def new(
        cls,
        lot_id: str,
        status: LotStatus,
        *,
        now_ms: int,
        source: SignalSource = SignalSource.POST,
    ) -> Signal:
        """Build a freshly accepted signal with a generated id."""
        signal_id = f"{lot_id}-{now_ms}-{secrets.token_hex(3)}"
        return cls(id=signal_id, lot_id=lot_id, status=status, created_at=now_ms, source=source)

    def age_minutes(self, now_ms: int) -> float:
        """Minutes elapsed between ``created_at`` and *now_ms*."""
        return (now_ms - self.created_at) / MS_PER_MINUTE
