"""Client configuration for pyiotux."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from pyiotux._constants import (
    BASE_URL,
    DEFAULT_DEDUP_TTL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SAVE_DEBOUNCE,
)
from pyiotux.exceptions import IotuxConfigError


def _env_number(env_key: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(raw)
    except ValueError as exc:
        raise IotuxConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class IotuxConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        API base URL.
    email : str or None
        Account email used by :meth:`IotuxClient.login` when no explicit
        credentials are passed.
    password : str or None
        Account password.
    request_timeout : float
        Total timeout in seconds for one HTTP request.
    max_retries : int
        Delivery attempts per queued command before it is dropped.
    save_debounce : float
        Seconds to coalesce queue mutations into one durable write.
    dedup_ttl : float
        Seconds a still-pending read may be shared with new callers.
    poll_interval : float
        Default interval for :class:`StatusPoller`.
    probe_timeout : float
        Timeout for the one-shot connectivity probe.
    storage_path : Path or None
        JSON file backing the durable store.  ``None`` keeps everything
        in memory (nothing survives a restart).
    """

    base_url: str = BASE_URL
    email: str | None = None
    password: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    save_debounce: float = DEFAULT_SAVE_DEBOUNCE
    dedup_ttl: float = DEFAULT_DEDUP_TTL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    storage_path: Path | None = None

    def __post_init__(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise IotuxConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        if self.max_retries < 1:
            raise IotuxConfigError("max_retries must be at least 1")
        for name in ("request_timeout", "probe_timeout", "poll_interval"):
            if getattr(self, name) <= 0:
                raise IotuxConfigError(f"{name} must be positive")
        if self.save_debounce < 0 or self.dedup_ttl < 0:
            raise IotuxConfigError("save_debounce and dedup_ttl must not be negative")
        # Normalise once so endpoint paths can always start with "/".
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> IotuxConfig:
        """Create configuration from ``IOTUX_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "IOTUX_BASE_URL": "base_url",
            "IOTUX_EMAIL": "email",
            "IOTUX_PASSWORD": "password",
        }
        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "IOTUX_REQUEST_TIMEOUT": ("request_timeout", float),
            "IOTUX_MAX_RETRIES": ("max_retries", int),
            "IOTUX_SAVE_DEBOUNCE": ("save_debounce", float),
            "IOTUX_DEDUP_TTL": ("dedup_ttl", float),
            "IOTUX_POLL_INTERVAL": ("poll_interval", float),
            "IOTUX_PROBE_TIMEOUT": ("probe_timeout", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        storage_env = env.get("IOTUX_STORAGE_PATH")
        if storage_env and "storage_path" not in overrides:
            config_kwargs["storage_path"] = Path(storage_env).expanduser()

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
