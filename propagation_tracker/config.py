"""Configuration for the lab API connection and the debounce windows."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any

import voluptuous as vol
import yaml

from .const import (
    CONF_BASE_URL,
    CONF_MAX_RETRIES,
    CONF_PREDICTION_DELAY,
    CONF_REQUEST_TIMEOUT,
    CONF_TOKEN,
    CONF_VALIDATION_DELAY,
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PREDICTION_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_VALIDATION_DELAY,
    ENV_BASE_URL,
    ENV_TOKEN,
)
from .exceptions import PropagationTrackerError

_LOGGER = logging.getLogger(__name__)

_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_BASE_URL, default=DEFAULT_BASE_URL): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_TOKEN, default=""): vol.Any(None, str),
        vol.Optional(CONF_REQUEST_TIMEOUT, default=DEFAULT_REQUEST_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional(CONF_MAX_RETRIES, default=DEFAULT_MAX_RETRIES): vol.All(vol.Coerce(int), vol.Range(min=0, max=10)),
        vol.Optional(CONF_VALIDATION_DELAY, default=DEFAULT_VALIDATION_DELAY): _SECONDS,
        vol.Optional(CONF_PREDICTION_DELAY, default=DEFAULT_PREDICTION_DELAY): _SECONDS,
    },
    extra=vol.REMOVE_EXTRA,
)


class ConfigError(PropagationTrackerError):
    """Raised when configuration cannot be loaded or fails validation."""


@dataclass(slots=True)
class TrackerConfig:
    """Settings shared by the API client and the form pipelines."""

    base_url: str = DEFAULT_BASE_URL
    token: str = ""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    validation_delay: float = DEFAULT_VALIDATION_DELAY
    prediction_delay: float = DEFAULT_PREDICTION_DELAY

    @classmethod
    def from_options(cls, options: Mapping[str, Any], *, env: Mapping[str, str] | None = None) -> TrackerConfig:
        """Validate ``options`` and apply environment overrides.

        ``PROPAGATION_TRACKER_API_URL`` and ``PROPAGATION_TRACKER_TOKEN`` win
        over values from ``options``.
        """

        env = os.environ if env is None else env
        merged = dict(options or {})
        if env.get(ENV_BASE_URL):
            merged[CONF_BASE_URL] = env[ENV_BASE_URL]
        if env.get(ENV_TOKEN):
            merged[CONF_TOKEN] = env[ENV_TOKEN]
        try:
            data = CONFIG_SCHEMA(merged)
        except vol.Invalid as err:
            raise ConfigError(f"invalid configuration: {err}", reason="invalid") from err
        return cls(
            base_url=str(data[CONF_BASE_URL]).strip().rstrip("/"),
            token=str(data[CONF_TOKEN] or "").strip(),
            request_timeout=data[CONF_REQUEST_TIMEOUT],
            max_retries=data[CONF_MAX_RETRIES],
            validation_delay=data[CONF_VALIDATION_DELAY],
            prediction_delay=data[CONF_PREDICTION_DELAY],
        )

    @property
    def authenticated(self) -> bool:
        return bool(self.token)


def load_config(path: str | PathLike[str], *, env: Mapping[str, str] | None = None) -> TrackerConfig:
    """Return a :class:`TrackerConfig` read from a YAML or JSON file."""

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    try:
        with open(p, encoding="utf-8") as f:
            if p.suffix.lower() in {".yaml", ".yml"}:
                raw = yaml.safe_load(f) or {}
            else:
                raw = json.load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid configuration in {p}: {exc}", reason="unreadable") from exc
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Configuration in {p} must be a mapping", reason="unreadable")
    _LOGGER.debug("Loaded configuration from %s", p)
    return TrackerConfig.from_options(raw, env=env)
