"""Library configuration for sparkmap."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any

from sparkmap._constants import (
    DEFAULT_CONFIDENCE_FLOOR,
    DEFAULT_CONFIDENCE_GAIN,
    DEFAULT_COOLDOWN_MINUTES,
    DEFAULT_DECAY_MINUTES,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_MAX_DISTANCE_METERS,
    DEFAULT_MAX_SIGNAL_AGE_MINUTES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TICK_INTERVAL,
    LOT_CURRENT_TABLE,
    LOTS_TABLE,
    REPORTS_TABLE,
)
from sparkmap.exceptions import SparkConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: Callable[[str], Any]) -> Any:
    try:
        return cast(value)
    except ValueError as exc:
        raise SparkConfigError(f"{env_key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ConsensusSettings:
    """Tuning knobs for the decayed consensus vote.

    Parameters
    ----------
    decay_minutes : float
        Exponential decay constant. A signal this old weighs ``1/e``.
    max_age_minutes : float
        Hard retention window. Older signals carry no weight at all.
    confidence_floor : float
        Confidence reported for a lot without any fresh signal.
    confidence_gain : float
        Slope applied to the margin before the sigmoid.
    """

    decay_minutes: float = DEFAULT_DECAY_MINUTES
    max_age_minutes: float = DEFAULT_MAX_SIGNAL_AGE_MINUTES
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    confidence_gain: float = DEFAULT_CONFIDENCE_GAIN

    def __post_init__(self) -> None:
        if self.decay_minutes <= 0:
            raise SparkConfigError("decay_minutes must be positive")
        if self.max_age_minutes <= 0:
            raise SparkConfigError("max_age_minutes must be positive")
        if not 0.0 <= self.confidence_floor <= 1.0:
            raise SparkConfigError("confidence_floor must be within 0..1")


@dataclasses.dataclass(frozen=True)
class SparkConfig:
    """Library configuration.

    Parameters
    ----------
    supabase_url : str
        Project URL of the backend (``https://<ref>.supabase.co``). Only
        required by the remote adapters.
    supabase_anon_key : str
        Anonymous API key sent as ``apikey`` and bearer token.
    reports_table : str
        Table receiving status reports.
    lots_table : str
        Table holding the lot catalog.
    realtime_table : str
        Table whose changes are pushed over the realtime channel.
    cooldown_minutes : float
        Minimum interval between two accepted reports for the same lot
        from this device.
    max_distance_meters : float
        Geofence radius around a lot inside which reports are accepted.
    tick_interval : float
        Seconds between periodic consensus recomputations.
    poll_interval : float
        Seconds between lot status polls while realtime is unavailable.
    heartbeat_interval : float
        Seconds between realtime channel heartbeats.
    rollback_on_persist_failure : bool
        Remove a locally accepted signal again when the remote insert
        fails. When ``False`` the signal is kept and the failure is only
        reported as a notice.
    consensus : ConsensusSettings
        Decay and confidence parameters.
    """

    supabase_url: str = ""
    supabase_anon_key: str = ""
    reports_table: str = REPORTS_TABLE
    lots_table: str = LOTS_TABLE
    realtime_table: str = LOT_CURRENT_TABLE
    cooldown_minutes: float = DEFAULT_COOLDOWN_MINUTES
    max_distance_meters: float = DEFAULT_MAX_DISTANCE_METERS
    tick_interval: float = DEFAULT_TICK_INTERVAL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    rollback_on_persist_failure: bool = True
    consensus: ConsensusSettings = dataclasses.field(default_factory=ConsensusSettings)

    def __post_init__(self) -> None:
        if self.cooldown_minutes < 0:
            raise SparkConfigError("cooldown_minutes must not be negative")
        if self.max_distance_meters <= 0:
            raise SparkConfigError("max_distance_meters must be positive")
        for name in ("tick_interval", "poll_interval", "heartbeat_interval"):
            if getattr(self, name) <= 0:
                raise SparkConfigError(f"{name} must be positive")

    @property
    def rest_url(self) -> str:
        """Base URL of the PostgREST API."""
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def realtime_url(self) -> str:
        """Websocket URL of the realtime channel endpoint."""
        base = self.supabase_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/realtime/v1/websocket?apikey={self.supabase_anon_key}&vsn=1.0.0"

    def require_remote(self) -> None:
        """Raise :class:`SparkConfigError` unless the backend is configured."""
        if not self.supabase_url or not self.supabase_anon_key:
            raise SparkConfigError("supabase_url and supabase_anon_key are required for remote access")

    @classmethod
    def from_env(cls, **overrides: Any) -> SparkConfig:
        """Create configuration from environment variables.

        Reads ``SPARK_SUPABASE_URL``, ``SPARK_SUPABASE_ANON_KEY`` and the
        optional ``SPARK_*`` tuning variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SparkConfig
            Populated configuration.
        """
        env = os.environ

        consensus_kwargs: dict[str, float] = {}
        _ENV_CONSENSUS_MAP = {
            "SPARK_DECAY_MINUTES": "decay_minutes",
            "SPARK_MAX_SIGNAL_AGE_MINUTES": "max_age_minutes",
        }
        for env_key, field_name in _ENV_CONSENSUS_MAP.items():
            val = env.get(env_key)
            if val is not None:
                consensus_kwargs[field_name] = _env_number(env_key, val, float)

        consensus_overrides = overrides.pop("consensus", None)
        if isinstance(consensus_overrides, dict):
            consensus_kwargs.update(consensus_overrides)
        elif isinstance(consensus_overrides, ConsensusSettings):
            consensus_kwargs = dataclasses.asdict(consensus_overrides)

        config_kwargs: dict[str, Any] = {"consensus": ConsensusSettings(**consensus_kwargs)}

        _ENV_CONFIG_MAP = {
            "SPARK_SUPABASE_URL": "supabase_url",
            "SPARK_SUPABASE_ANON_KEY": "supabase_anon_key",
            "SPARK_REPORTS_TABLE": "reports_table",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "SPARK_COOLDOWN_MINUTES": "cooldown_minutes",
            "SPARK_MAX_DISTANCE_METERS": "max_distance_meters",
            "SPARK_TICK_INTERVAL": "tick_interval",
            "SPARK_POLL_INTERVAL": "poll_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)

        if "rollback_on_persist_failure" not in overrides:
            config_kwargs["rollback_on_persist_failure"] = _env_bool(
                env.get("SPARK_ROLLBACK_ON_PERSIST_FAILURE"),
                True,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
