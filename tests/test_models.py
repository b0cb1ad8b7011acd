"""Tests for Pydantic model parsing with SparkBaseModel."""

from __future__ import annotations

import pydantic
import pytest

from sparkmap.exceptions import OnCooldownError, OutOfRangeError
from sparkmap.models import (
    GeoPoint,
    Lot,
    LotConsensus,
    LotStatus,
    ServerLotStatus,
    Signal,
    SignalSource,
    SubmissionOutcome,
    SubmissionState,
    to_iso8601,
)

# ------------------------------------------------------------------
# LotStatus
# ------------------------------------------------------------------


class TestLotStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("OPEN", LotStatus.OPEN),
            ("empty", LotStatus.OPEN),
            ("open", LotStatus.OPEN),
            ("Filling", LotStatus.FILLING),
            ("tight", LotStatus.FULL),
            (" full ", LotStatus.FULL),
        ],
    )
    def test_legacy_values_are_folded(self, raw: str, expected: LotStatus) -> None:
        assert LotStatus(raw) == expected

    def test_parse_returns_none_for_unknown(self) -> None:
        assert LotStatus.parse("packed") is None
        assert LotStatus.parse(None) is None
        assert LotStatus.parse(3) is None

    def test_label(self) -> None:
        assert LotStatus.FILLING.label == "Filling"

    def test_declaration_order(self) -> None:
        assert list(LotStatus) == [LotStatus.OPEN, LotStatus.FILLING, LotStatus.FULL]


# ------------------------------------------------------------------
# Signals and lots
# ------------------------------------------------------------------


class TestSignal:
    def test_new_generates_unique_ids(self) -> None:
        a = Signal.new("lot_39", LotStatus.FULL, now_ms=1_000)
        b = Signal.new("lot_39", LotStatus.FULL, now_ms=1_000)

        assert a.id.startswith("lot_39-1000-")
        assert a.id != b.id
        assert a.source == SignalSource.POST

    def test_age_minutes(self) -> None:
        signal = Signal(id="s", lot_id="L", status=LotStatus.OPEN, created_at=0)
        assert signal.age_minutes(90_000) == 1.5

    def test_is_frozen(self) -> None:
        signal = Signal(id="s", lot_id="L", status=LotStatus.OPEN, created_at=0)
        with pytest.raises(pydantic.ValidationError):
            signal.status = LotStatus.FULL  # type: ignore[misc]

    def test_rejects_unknown_status(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Signal(id="s", lot_id="L", status="packed", created_at=0)  # type: ignore[arg-type]


def test_lot_coerces_numeric_id() -> None:
    lot = Lot.model_validate({"id": 39, "name": "Lot 39", "lat": 42.7, "lng": -84.4, "capacity": 200})
    assert lot.id == "39"
    assert lot.point == GeoPoint(lat=42.7, lng=-84.4)


def test_geo_point_aliases() -> None:
    assert GeoPoint.model_validate({"latitude": 1.0, "longitude": 2.0}) == GeoPoint(lat=1.0, lng=2.0)
    assert GeoPoint.model_validate({"lat": 1.0, "lon": 2.0}).lng == 2.0


def test_server_status_drops_placeholders() -> None:
    status = ServerLotStatus.model_validate({"lot_id": 7, "status": "", "confidence": float("nan")})
    assert status.lot_id == "7"
    assert status.status is None
    assert status.confidence is None


def test_server_status_tolerates_unknown_status() -> None:
    assert ServerLotStatus(lot_id="7", status="packed").status is None  # type: ignore[arg-type]


def test_lot_consensus_initial() -> None:
    consensus = LotConsensus.initial(5_000)
    assert consensus.status == LotStatus.OPEN
    assert consensus.confidence == 0.25
    assert consensus.updated_at == 5_000
    assert consensus.pending is None


def test_to_iso8601() -> None:
    assert to_iso8601(1_500) == "1970-01-01T00:00:01.500000Z"


# ------------------------------------------------------------------
# Submission outcomes
# ------------------------------------------------------------------


class TestSubmissionOutcome:
    def test_remaining_ms_only_for_cooldown(self) -> None:
        cooldown = SubmissionOutcome(
            state=SubmissionState.REJECTED,
            lot_id="L",
            status=LotStatus.FULL,
            message="wait",
            error=OnCooldownError("wait", remaining_ms=1_000),
        )
        out_of_range = SubmissionOutcome(
            state=SubmissionState.REJECTED,
            lot_id="L",
            status=LotStatus.FULL,
            message="far",
            error=OutOfRangeError("far", distance_meters=300.0, radius_meters=150.0),
        )
        assert cooldown.remaining_ms == 1_000
        assert not cooldown.accepted
        assert out_of_range.remaining_ms is None

    def test_terminal_states(self) -> None:
        assert SubmissionState.PERSISTED.is_terminal
        assert SubmissionState.ROLLED_BACK.is_terminal
        assert not SubmissionState.ACCEPTED.is_terminal
