"""Data models for sparkmap."""

from sparkmap.models._base import SparkBaseModel, to_iso8601
from sparkmap.models.consensus import LotConsensus, PendingTransition
from sparkmap.models.lot import GeoPoint, Lot, ServerLotStatus
from sparkmap.models.signal import LotStatus, Signal, SignalSource
from sparkmap.models.submission import SubmissionOutcome, SubmissionState

__all__ = [
    "GeoPoint",
    "Lot",
    "LotConsensus",
    "LotStatus",
    "PendingTransition",
    "ServerLotStatus",
    "Signal",
    "SignalSource",
    "SparkBaseModel",
    "SubmissionOutcome",
    "SubmissionState",
    "to_iso8601",
]
