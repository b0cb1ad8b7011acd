"""Report submission states and outcomes."""

from __future__ import annotations

import enum

from pydantic import ConfigDict

from sparkmap.exceptions import OnCooldownError, SubmissionError
from sparkmap.models._base import SparkBaseModel
from sparkmap.models.signal import LotStatus, Signal


class SubmissionState(enum.StrEnum):
    """Lifecycle of a single submission attempt."""

    IDLE = "idle"
    VALIDATING_COOLDOWN = "validating_cooldown"
    VALIDATING_LOCATION = "validating_location"
    ACCEPTED = "accepted"
    PERSISTED = "persisted"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionState.PERSISTED, SubmissionState.ROLLED_BACK, SubmissionState.REJECTED)


class SubmissionOutcome(SparkBaseModel):
    """Result of :meth:`sparkmap.gate.ReportGate.submit`.

    ``error`` is set for rejections and rollbacks. A ``PERSISTED`` outcome
    may still carry an error when the remote insert failed but the signal
    was kept locally; treat it as a transient notice.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    state: SubmissionState
    lot_id: str
    status: LotStatus
    message: str
    signal: Signal | None = None
    error: SubmissionError | None = None

    @property
    def accepted(self) -> bool:
        """Whether the signal is part of the local signal window."""
        return self.state == SubmissionState.PERSISTED

    @property
    def remaining_ms(self) -> int | None:
        """Remaining cooldown when rejected for reporting too soon."""
        if isinstance(self.error, OnCooldownError):
            return self.error.remaining_ms
        return None
