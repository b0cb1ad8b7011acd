"""Custom exception hierarchy for sparkmap."""

from __future__ import annotations


class SparkError(Exception):
    """Base exception for all sparkmap errors."""


class SparkConfigError(SparkError):
    """Invalid or missing configuration."""


class SparkUnknownLotError(SparkError):
    """A lot id that is not part of the loaded catalog."""

    def __init__(self, lot_id: str) -> None:
        self.lot_id = lot_id
        super().__init__(f"Unknown lot: {lot_id!r}")


class SparkTransportError(SparkError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SparkApiError(SparkTransportError):
    """The backend rejected the request with a structured error body."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.code = code
        super().__init__(message, status_code=status_code, endpoint=endpoint)


# ------------------------------------------------------------------
# Submission outcomes
# ------------------------------------------------------------------


class SubmissionError(SparkError):
    """Base for every user-facing report submission failure.

    None of these are fatal; the gate converts them into a
    :class:`~sparkmap.models.submission.SubmissionOutcome`.
    """


class PermissionDeniedError(SubmissionError):
    """Location permission refused, or no position fix could be obtained."""


class OutOfRangeError(SubmissionError):
    """The device is further from the lot than the allowed radius."""

    def __init__(self, message: str, *, distance_meters: float, radius_meters: float) -> None:
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters
        super().__init__(message)


class OnCooldownError(SubmissionError):
    """A report for this lot was accepted too recently."""

    def __init__(self, message: str, *, remaining_ms: int) -> None:
        self.remaining_ms = remaining_ms
        super().__init__(message)


class PersistenceFailureError(SubmissionError):
    """The remote insert failed after the signal was accepted locally."""


class UnknownSubmissionError(SubmissionError):
    """Unexpected exception raised somewhere in the submission flow."""


class LocationUnavailableError(SparkError):
    """The location provider could not produce a position fix."""
