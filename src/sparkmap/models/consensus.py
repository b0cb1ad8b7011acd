"""Per-lot consensus snapshot."""

from __future__ import annotations

from sparkmap._constants import DEFAULT_CONFIDENCE_FLOOR
from sparkmap.models._base import SparkBaseModel
from sparkmap.models.signal import LotStatus


class PendingTransition(SparkBaseModel):
    """A candidate status waiting for a second confirming recomputation."""

    status: LotStatus
    seen_at: int


class LotConsensus(SparkBaseModel):
    """Displayed status of a lot plus the evidence behind it.

    Parameters
    ----------
    status : LotStatus
        Currently displayed status. Only changes through the two-tick
        confirmation latch.
    margin : float
        Weight gap between the leading and the runner-up status.
    confidence : float
        ``0..1``; a function of the current signal window only.
    updated_at : int
        Epoch milliseconds of the last committed status change.
    pending : PendingTransition or None
        Candidate status awaiting confirmation.
    """

    status: LotStatus = LotStatus.OPEN
    margin: float = 0.0
    confidence: float = DEFAULT_CONFIDENCE_FLOOR
    updated_at: int = 0
    pending: PendingTransition | None = None

    @classmethod
    def initial(cls, now_ms: int, *, confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR) -> LotConsensus:
        """Default state for a lot nobody has reported on yet."""
        return cls(
            status=LotStatus.OPEN,
            margin=0.0,
            confidence=confidence_floor,
            updated_at=now_ms,
            pending=None,
        )
