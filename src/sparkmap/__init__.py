"""sparkmap - Crowdsourced parking lot occupancy consensus."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sparkmap")
except PackageNotFoundError:
    __version__ = "0+local"
from sparkmap.catalog import DEFAULT_LOTS, search_lots
from sparkmap.client import SparkClient
from sparkmap.config import ConsensusSettings, SparkConfig
from sparkmap.exceptions import (
    LocationUnavailableError,
    OnCooldownError,
    OutOfRangeError,
    PermissionDeniedError,
    PersistenceFailureError,
    SparkApiError,
    SparkConfigError,
    SparkError,
    SparkTransportError,
    SparkUnknownLotError,
    SubmissionError,
    UnknownSubmissionError,
)
from sparkmap.feed import ConnectionState, LotFeed
from sparkmap.gate import ReportGate, Submission
from sparkmap.geo import distance_meters, within_radius
from sparkmap.location import FixedLocationProvider, LocationProvider, PermissionStatus
from sparkmap.models import (
    GeoPoint,
    Lot,
    LotConsensus,
    LotStatus,
    PendingTransition,
    ServerLotStatus,
    Signal,
    SignalSource,
    SubmissionOutcome,
    SubmissionState,
)
from sparkmap.session import ParkingSession
from sparkmap.state.consensus import ConsensusStore
from sparkmap.state.signals import SignalStore
from sparkmap.storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "__version__",
    "ConnectionState",
    "ConsensusSettings",
    "ConsensusStore",
    "DEFAULT_LOTS",
    "FixedLocationProvider",
    "GeoPoint",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LocationProvider",
    "LocationUnavailableError",
    "Lot",
    "LotConsensus",
    "LotFeed",
    "LotStatus",
    "MemoryKeyValueStore",
    "OnCooldownError",
    "OutOfRangeError",
    "ParkingSession",
    "PendingTransition",
    "PermissionDeniedError",
    "PermissionStatus",
    "PersistenceFailureError",
    "ReportGate",
    "ServerLotStatus",
    "Signal",
    "SignalSource",
    "SignalStore",
    "SparkApiError",
    "SparkClient",
    "SparkConfig",
    "SparkConfigError",
    "SparkError",
    "SparkTransportError",
    "SparkUnknownLotError",
    "Submission",
    "SubmissionError",
    "SubmissionOutcome",
    "SubmissionState",
    "UnknownSubmissionError",
    "distance_meters",
    "search_lots",
    "within_radius",
]
