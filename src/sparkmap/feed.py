"""Server-side lot status feed with realtime push and polling fallback.

Two background tasks cooperate:

- the push loop keeps a realtime listener connected (reconnecting after
  a delay whenever it drops);
- the poll loop refetches the lot table every ``poll_interval`` seconds,
  but only while the push channel is not subscribed.

Every push event postpones the next poll, and a push that only repeats
what the last poll delivered does not fire listeners again. The resulting
mode is exposed as :class:`ConnectionState` instead of scattered flags.

The statuses tracked here are the backend's own aggregation; they are
never fed into the local consensus engine.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from sparkmap.models.lot import Lot, ServerLotStatus

_logger = logging.getLogger(__name__)

LotFetcher = Callable[[], Awaitable[tuple[list[Lot], dict[str, ServerLotStatus]]]]
FeedListener = Callable[[dict[str, ServerLotStatus]], None]


class ConnectionState(enum.StrEnum):
    IDLE = "idle"
    LIVE = "live"
    POLLING = "polling"


class PushSource(Protocol):
    """Structural interface of a realtime listener (see ``RealtimeListener``)."""

    async def run(
        self,
        on_change: Callable[[ServerLotStatus], None],
        on_subscribed: Callable[[bool], None],
    ) -> None: ...


class LotFeed:
    """Keeps the lot catalog and server statuses fresh."""

    def __init__(
        self,
        fetch: LotFetcher,
        push: PushSource | None = None,
        *,
        poll_interval: float = 20.0,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._fetch = fetch
        self._push = push
        self._poll_interval = poll_interval
        self._reconnect_delay = reconnect_delay
        self._state = ConnectionState.IDLE
        self._lots: dict[str, Lot] = {}
        self._statuses: dict[str, ServerLotStatus] = {}
        self._listeners: list[FeedListener] = []
        self._polling_enabled = asyncio.Event()
        self._poke = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._last_error: Exception | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LotFeed:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def lots(self) -> list[Lot]:
        return list(self._lots.values())

    @property
    def statuses(self) -> dict[str, ServerLotStatus]:
        return dict(self._statuses)

    @property
    def last_error(self) -> Exception | None:
        """Error raised by the most recent failed fetch, cleared on success."""
        return self._last_error

    def add_listener(self, listener: FeedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        snapshot = self.statuses
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.exception("Feed listener %r failed", listener)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Fetch the lot table once and replace the local copy."""
        lots, statuses = await self._fetch()
        self._lots = {lot.id: lot for lot in lots}
        self._statuses = dict(statuses)
        self._last_error = None
        self._notify()

    async def _refresh_logged(self) -> None:
        try:
            await self.refresh()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._last_error = exc
            _logger.warning("Lot refresh failed: %s", exc)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        _logger.debug("Feed connection state %s -> %s", self._state, state)
        self._state = state
        if state == ConnectionState.POLLING:
            self._polling_enabled.set()
        else:
            self._polling_enabled.clear()
        self._poke.set()

    def _spawn_refresh(self) -> None:
        self._tasks = [task for task in self._tasks if not task.done()]
        self._tasks.append(asyncio.get_running_loop().create_task(self._refresh_logged()))

    def _on_subscribed(self, subscribed: bool) -> None:
        if not self._tasks:
            return
        if subscribed:
            self._set_state(ConnectionState.LIVE)
            # Catch up on anything missed while the channel was down.
            self._spawn_refresh()
        else:
            _logger.warning("Realtime channel lost, falling back to polling")
            self._set_state(ConnectionState.POLLING)

    def _on_push_change(self, status: ServerLotStatus) -> None:
        self._poke.set()
        if status.lot_id not in self._lots:
            self._spawn_refresh()
            return
        if self._statuses.get(status.lot_id) == status:
            _logger.debug("Dropping push for lot %s, already at %s", status.lot_id, status.status)
            return
        self._statuses[status.lot_id] = status
        self._notify()

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start polling immediately and, if configured, the push listener."""
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks.append(loop.create_task(self._poll_loop()))
        if self._push is not None:
            self._tasks.append(loop.create_task(self._push_loop()))
        self._set_state(ConnectionState.POLLING)

    async def stop(self) -> None:
        """Cancel both background tasks and return to ``IDLE``."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_state(ConnectionState.IDLE)

    async def _poll_loop(self) -> None:
        while True:
            await self._polling_enabled.wait()
            await self._refresh_logged()
            while self._polling_enabled.is_set():
                self._poke.clear()
                try:
                    await asyncio.wait_for(self._poke.wait(), timeout=self._poll_interval)
                except TimeoutError:
                    break

    async def _push_loop(self) -> None:
        assert self._push is not None  # noqa: S101
        while True:
            try:
                await self._push.run(self._on_push_change, self._on_subscribed)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                _logger.warning("Realtime listener stopped: %s", exc)
            if self._state == ConnectionState.LIVE:
                self._set_state(ConnectionState.POLLING)
            await asyncio.sleep(self._reconnect_delay)
