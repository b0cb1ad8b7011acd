"""Internal realtime channel parsing and listener.

The backend pushes row changes over a Phoenix channel websocket. Messages
are JSON objects ``{"topic", "event", "payload", "ref"}``.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from sparkmap.config import SparkConfig
from sparkmap.exceptions import SparkApiError, SparkTransportError
from sparkmap.models.lot import ServerLotStatus

_PHOENIX_TOPIC = "phoenix"


@dataclass(frozen=True)
class RealtimeChange:
    """Normalized row change pushed by the backend."""

    change_type: str
    table: str
    record: dict[str, Any] = field(default_factory=dict)
    old_record: dict[str, Any] = field(default_factory=dict)


def channel_topic(table: str, schema: str = "public") -> str:
    return f"realtime:{schema}:{table}"


def build_join_message(table: str, *, access_token: str, ref: str, schema: str = "public") -> dict[str, Any]:
    """Join request subscribing to every change on *table*."""
    return {
        "topic": channel_topic(table, schema),
        "event": "phx_join",
        "payload": {
            "config": {
                "postgres_changes": [{"event": "*", "schema": schema, "table": table}],
            },
            "access_token": access_token,
        },
        "ref": ref,
    }


def build_heartbeat_message(ref: str) -> dict[str, Any]:
    return {"topic": _PHOENIX_TOPIC, "event": "heartbeat", "payload": {}, "ref": ref}


def parse_change(message: dict[str, Any]) -> RealtimeChange | None:
    """Extract a row change from a ``postgres_changes`` message.

    Accepts both the nested (``payload.data``) and the flat payload shape.
    """
    if message.get("event") != "postgres_changes":
        return None
    payload = message.get("payload")
    if not isinstance(payload, dict):
        return None
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        return None
    change_type = str(data.get("type") or data.get("eventType") or "").upper()
    if not change_type:
        return None
    record = data.get("record")
    old_record = data.get("old_record")
    return RealtimeChange(
        change_type=change_type,
        table=str(data.get("table") or ""),
        record=record if isinstance(record, dict) else {},
        old_record=old_record if isinstance(old_record, dict) else {},
    )


def change_to_status(change: RealtimeChange) -> ServerLotStatus | None:
    """Turn a ``lot_current`` change into the new server status.

    Deletions clear status and confidence.
    """
    lot_id = change.record.get("lot_id")
    if lot_id is None:
        lot_id = change.old_record.get("lot_id")
    if lot_id is None:
        return None
    if change.change_type == "DELETE":
        return ServerLotStatus(lot_id=lot_id)
    return ServerLotStatus(
        lot_id=lot_id,
        status=change.record.get("status"),
        confidence=change.record.get("confidence"),
    )


class RealtimeListener:
    """Websocket listener that forwards ``lot_current`` changes to callbacks.

    :meth:`run` returns (or raises) when the connection ends; reconnecting
    is left to the caller.
    """

    def __init__(
        self,
        config: SparkConfig,
        http_session: aiohttp.ClientSession,
        *,
        schema: str = "public",
        logger: logging.Logger | None = None,
    ) -> None:
        config.require_remote()
        self._config = config
        self._http = http_session
        self._schema = schema
        self._logger = logger or logging.getLogger(__name__)
        self._refs = itertools.count(1)
        self._join_ref: str | None = None
        self._subscribed = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    def _next_ref(self) -> str:
        return str(next(self._refs))

    async def run(
        self,
        on_change: Callable[[ServerLotStatus], None],
        on_subscribed: Callable[[bool], None],
    ) -> None:
        """Connect, join the channel and dispatch messages until disconnected."""
        topic = channel_topic(self._config.realtime_table, self._schema)
        try:
            async with self._http.ws_connect(self._config.realtime_url) as ws:
                self._join_ref = self._next_ref()
                await ws.send_json(
                    build_join_message(
                        self._config.realtime_table,
                        access_token=self._config.supabase_anon_key,
                        ref=self._join_ref,
                        schema=self._schema,
                    )
                )
                self._logger.debug("Realtime join sent topic=%s", topic)

                heartbeat = asyncio.create_task(self._heartbeat(ws))
                try:
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self._dispatch(msg.data, topic, on_change, on_subscribed)
                        elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                            break
                finally:
                    heartbeat.cancel()
                    with contextlib.suppress(asyncio.CancelledError, aiohttp.ClientError, ConnectionError):
                        await heartbeat
        except aiohttp.ClientError as exc:
            raise SparkTransportError(f"Realtime connection failed: {exc}", endpoint="/realtime/v1") from exc
        finally:
            if self._subscribed:
                self._subscribed = False
                on_subscribed(False)
            self._logger.debug("Realtime connection closed topic=%s", topic)

    async def _heartbeat(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            await asyncio.sleep(self._config.heartbeat_interval)
            await ws.send_json(build_heartbeat_message(self._next_ref()))

    def _dispatch(
        self,
        raw: str,
        topic: str,
        on_change: Callable[[ServerLotStatus], None],
        on_subscribed: Callable[[bool], None],
    ) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            self._logger.debug("Ignoring non-JSON realtime frame", exc_info=True)
            return
        if not isinstance(message, dict) or message.get("topic") != topic:
            return

        event = message.get("event")
        if event == "phx_reply" and message.get("ref") == self._join_ref:
            payload = message.get("payload") or {}
            if payload.get("status") != "ok":
                raise SparkApiError(
                    f"Realtime join rejected: {payload.get('response')}",
                    code=str(payload.get("status", "")),
                    endpoint="/realtime/v1",
                )
            self._subscribed = True
            self._logger.debug("Realtime subscribed topic=%s", topic)
            on_subscribed(True)
            return

        if event in ("phx_error", "phx_close"):
            raise SparkTransportError(f"Realtime channel {event}", endpoint="/realtime/v1")

        change = parse_change(message)
        if change is None:
            return
        status = change_to_status(change)
        if status is not None:
            on_change(status)
