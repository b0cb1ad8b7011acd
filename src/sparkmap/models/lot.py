"""Lot catalog entries and coordinates."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from sparkmap.models._base import SparkBaseModel
from sparkmap.models.signal import LotStatus


class GeoPoint(SparkBaseModel):
    """A latitude/longitude pair in decimal degrees."""

    lat: float = Field(validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(validation_alias=AliasChoices("lng", "lon", "longitude"))


class Lot(SparkBaseModel):
    """A named parking lot. Loaded once and never mutated.

    Parameters
    ----------
    id : str
        Stable identifier. Numeric ids from the backend are stringified.
    name : str
        Display name.
    lat : float
        Latitude in degrees.
    lng : float
        Longitude in degrees.
    """

    id: str
    name: str
    lat: float
    lng: float

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class ServerLotStatus(SparkBaseModel):
    """Status and confidence as aggregated by the backend.

    Kept apart from the locally computed consensus; the two are never
    merged.
    """

    lot_id: str
    status: LotStatus | None = None
    confidence: float | None = None

    @field_validator("lot_id", mode="before")
    @classmethod
    def _coerce_lot_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> LotStatus | None:
        return LotStatus.parse(value)
