"""Device location contract."""

from __future__ import annotations

import enum
from typing import Protocol

from sparkmap.models.lot import GeoPoint


class PermissionStatus(enum.StrEnum):
    GRANTED = "granted"
    DENIED = "denied"


class LocationProvider(Protocol):
    """Structural interface to the platform location service.

    ``get_current_position`` may suspend for as long as the platform needs
    to produce a fix; no timeout is imposed on top of it. It raises
    :class:`~sparkmap.exceptions.LocationUnavailableError` when no fix can
    be obtained.
    """

    async def request_permission(self) -> PermissionStatus: ...

    async def get_current_position(self) -> GeoPoint: ...


class FixedLocationProvider:
    """Provider that always reports the same position.

    Handy for kiosks and fixed sensors posting on behalf of a single lot.
    """

    def __init__(self, position: GeoPoint, *, permission: PermissionStatus = PermissionStatus.GRANTED) -> None:
        self._position = position
        self._permission = permission

    async def request_permission(self) -> PermissionStatus:
        return self._permission

    async def get_current_position(self) -> GeoPoint:
        return self._position
