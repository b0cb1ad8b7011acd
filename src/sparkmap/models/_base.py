"""Base model shared by sparkmap data models.

Every model inherits from :class:`SparkBaseModel` which provides:

* frozen instances, so snapshots handed to callers cannot be edited
  behind the store's back;
* a ``model_validator(mode="before")`` that drops backend placeholder
  values (``None``, ``""``, NaN) so the field default is used.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


def to_iso8601(epoch_ms: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC).isoformat().replace("+00:00", "Z")


class SparkBaseModel(BaseModel):
    """Base for sparkmap models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_placeholders(cls, values: Any) -> Any:
        """Strip placeholder values so the field default is used instead."""
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned
