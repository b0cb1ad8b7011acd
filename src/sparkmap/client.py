"""High-level async client wiring the backend into sessions and feeds."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import aiohttp

from sparkmap._api.lots import fetch_lots
from sparkmap._api.reports import RemoteReportSink
from sparkmap._realtime import RealtimeListener
from sparkmap._transport import RestTransport
from sparkmap.config import SparkConfig
from sparkmap.exceptions import SparkError
from sparkmap.feed import LotFeed
from sparkmap.location import LocationProvider
from sparkmap.models.lot import Lot, ServerLotStatus
from sparkmap.session import ParkingSession
from sparkmap.storage import KeyValueStore

_logger = logging.getLogger(__name__)


class SparkClient:
    """Async client for the crowdsourced parking backend.

    Usage::

        async with SparkClient(SparkConfig.from_env()) as client:
            lots, _ = await client.load_lots()
            async with client.create_session(lots, storage=store, location=gps) as session:
                await session.submit(lots[0].id, "full")
    """

    def __init__(
        self,
        config: SparkConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: RestTransport | None = None
        self._sink: RemoteReportSink | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SparkClient:
        self._config.require_remote()
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = RestTransport(self._config, self._http_session)
        self._sink = RemoteReportSink(self._transport, table=self._config.reports_table)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._sink = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> RestTransport:
        if self._transport is None:
            raise SparkError("Client not initialized. Use 'async with SparkClient(...) as client:'")
        return self._transport

    def _require_http(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise SparkError("Client not initialized. Use 'async with SparkClient(...) as client:'")
        return self._http_session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def config(self) -> SparkConfig:
        return self._config

    async def load_lots(self) -> tuple[list[Lot], dict[str, ServerLotStatus]]:
        """Fetch the lot catalog together with the backend's current statuses."""
        lots, statuses = await fetch_lots(self._require_transport(), table=self._config.lots_table)
        _logger.debug("Loaded %d lots", len(lots))
        return lots, statuses

    def create_session(
        self,
        lots: Iterable[Lot],
        *,
        storage: KeyValueStore,
        location: LocationProvider,
    ) -> ParkingSession:
        """Build a consensus session whose reports are persisted remotely."""
        self._require_transport()
        assert self._sink is not None  # noqa: S101
        return ParkingSession(
            lots,
            sink=self._sink,
            storage=storage,
            location=location,
            config=self._config,
        )

    def create_feed(self, *, realtime: bool = True) -> LotFeed:
        """Build a server status feed, live over the websocket when *realtime*."""
        self._require_transport()
        push = RealtimeListener(self._config, self._require_http()) if realtime else None
        return LotFeed(self.load_lots, push, poll_interval=self._config.poll_interval)
