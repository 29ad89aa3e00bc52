"""Wall configuration for photowall."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from photowall.exceptions import WallConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class WallConfig:
    """Wall configuration.

    Parameters
    ----------
    base_url : str
        Backend base URL used for snapshot reads (PostgREST style).
    api_key : str
        Anonymous API key sent as ``apikey`` and bearer token.
    collection_table : str
        Table holding the photo rows.
    collection_column : str
        Column of that table holding the collection id.
    broker_host : str or None
        MQTT broker carrying the change feed. ``None`` disables push.
    broker_port : int
        MQTT broker port.
    broker_tls : bool
        Whether to connect to the broker over TLS.
    broker_username : str or None
        Optional broker username.
    broker_password : str or None
        Optional broker password.
    topic_prefix : str
        Prefix of the per-collection change topic.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    subscribe_grace_period : float
        Seconds to wait for the feed to become live before polling starts.
    subscribe_timeout : float
        Upper bound for a single subscribe attempt.
    poll_interval : float
        Seconds between snapshot polls while degraded.
    poll_timeout : float
        Upper bound for a single snapshot read.
    poll_failure_threshold : int
        Consecutive poll failures after which the wall reports itself unavailable.
    feed_enabled : bool
        Enable the push feed. When disabled the wall polls only.
    """

    base_url: str
    api_key: str = ""
    collection_table: str = "photos"
    collection_column: str = "collage_id"
    broker_host: str | None = None
    broker_port: int = 8883
    broker_tls: bool = True
    broker_username: str | None = None
    broker_password: str | None = None
    topic_prefix: str = "photowall/collections"
    mqtt_keepalive: int = 60
    subscribe_grace_period: float = 5.0
    subscribe_timeout: float = 10.0
    poll_interval: float = 5.0
    poll_timeout: float = 10.0
    poll_failure_threshold: int = 3
    feed_enabled: bool = True

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise WallConfigError("base_url must be non-empty")
        for name in ("subscribe_grace_period", "subscribe_timeout", "poll_interval", "poll_timeout"):
            if getattr(self, name) <= 0:
                raise WallConfigError(f"{name} must be positive")
        if self.poll_failure_threshold < 1:
            raise WallConfigError("poll_failure_threshold must be at least 1")

    @property
    def push_enabled(self) -> bool:
        """Whether a push feed is configured and enabled."""
        return self.feed_enabled and bool(self.broker_host)

    def topic_for(self, collection_id: str) -> str:
        return f"{self.topic_prefix.rstrip('/')}/{collection_id}"

    @classmethod
    def from_env(cls, **overrides: Any) -> WallConfig:
        """Create configuration from environment variables.

        Reads ``PHOTOWALL_BASE_URL`` and the optional ``PHOTOWALL_*``
        variables. Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        WallConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "PHOTOWALL_BASE_URL": "base_url",
            "PHOTOWALL_API_KEY": "api_key",
            "PHOTOWALL_TABLE": "collection_table",
            "PHOTOWALL_COLLECTION_COLUMN": "collection_column",
            "PHOTOWALL_BROKER_HOST": "broker_host",
            "PHOTOWALL_BROKER_USERNAME": "broker_username",
            "PHOTOWALL_BROKER_PASSWORD": "broker_password",
            "PHOTOWALL_TOPIC_PREFIX": "topic_prefix",
        }
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "PHOTOWALL_BROKER_PORT": ("broker_port", int),
            "PHOTOWALL_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
            "PHOTOWALL_GRACE_PERIOD": ("subscribe_grace_period", float),
            "PHOTOWALL_SUBSCRIBE_TIMEOUT": ("subscribe_timeout", float),
            "PHOTOWALL_POLL_INTERVAL": ("poll_interval", float),
            "PHOTOWALL_POLL_TIMEOUT": ("poll_timeout", float),
            "PHOTOWALL_POLL_FAILURE_THRESHOLD": ("poll_failure_threshold", int),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise WallConfigError(f"{env_key} is not a valid {caster.__name__}: {val!r}") from exc

        if "broker_tls" not in overrides:
            config_kwargs["broker_tls"] = _env_bool(env.get("PHOTOWALL_BROKER_TLS"), True)
        if "feed_enabled" not in overrides:
            config_kwargs["feed_enabled"] = _env_bool(env.get("PHOTOWALL_FEED_ENABLED"), True)

        config_kwargs.update(overrides)
        if "base_url" not in config_kwargs:
            raise WallConfigError("PHOTOWALL_BASE_URL is not set")

        return cls(**config_kwargs)
