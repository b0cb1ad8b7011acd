"""HTTP transport for the backend's PostgREST API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from sparkmap._redact import redact_for_log
from sparkmap.config import SparkConfig
from sparkmap.exceptions import SparkApiError, SparkTransportError

_logger = logging.getLogger(__name__)

USER_AGENT = "sparkmap-python"


class Transport(Protocol):
    """Structural transport interface used by the endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestTransport`) concrete.
    """

    async def insert(self, table: str, row: Mapping[str, Any]) -> None: ...

    async def select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]: ...


def _error_from_body(text: str, *, status: int, endpoint: str) -> SparkTransportError:
    """Map a non-2xx response onto the exception hierarchy."""
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        body = None
    if isinstance(body, dict) and ("code" in body or "message" in body):
        return SparkApiError(
            f"{endpoint} rejected request: {body.get('message', '')}",
            code=str(body.get("code", "")),
            status_code=status,
            endpoint=endpoint,
        )
    return SparkTransportError(
        f"HTTP {status} from {endpoint}: {text[:200]}",
        status_code=status,
        endpoint=endpoint,
    )


class RestTransport:
    """JSON-over-HTTP transport authenticating with the anonymous API key."""

    def __init__(self, config: SparkConfig, http_session: aiohttp.ClientSession) -> None:
        config.require_remote()
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._config.supabase_anon_key,
            "authorization": f"Bearer {self._config.supabase_anon_key}",
            "content-type": "application/json",
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Any = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> str:
        url = f"{self._config.rest_url}{endpoint}"
        headers = self._headers()
        if extra_headers:
            headers.update(extra_headers)
        data = json.dumps(body, separators=(",", ":")) if body is not None else None

        _logger.debug(
            "%s %s params=%s body=%s headers=%s",
            method,
            url,
            dict(params or {}),
            redact_for_log(body),
            redact_for_log(headers),
        )

        try:
            async with self._http.request(method, url, params=params, data=data, headers=headers) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise _error_from_body(text, status=resp.status, endpoint=endpoint)
        except SparkTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise SparkTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        return text

    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        """Insert one row without asking for it back."""
        await self._request(
            "POST",
            f"/{table}",
            body=dict(row),
            extra_headers={"prefer": "return=minimal"},
        )

    async def select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        """Run a PostgREST select and return the decoded rows."""
        endpoint = f"/{table}"
        text = await self._request("GET", endpoint, params=params)
        try:
            rows = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SparkTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc
        if not isinstance(rows, list):
            raise SparkTransportError(f"Expected a JSON array from {endpoint}", endpoint=endpoint)
        return [row for row in rows if isinstance(row, dict)]
