from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

SDK_VERSION = "0.1.0"

DEFAULT_BASE_URL = "https://api.flense.dev"
DEFAULT_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0

API_KEY_ENV = "FLENSE_API_KEY"
BASE_URL_ENV = "FLENSE_BASE_URL"
TIMEOUT_ENV = "FLENSE_TIMEOUT"
POLL_INTERVAL_ENV = "FLENSE_POLL_INTERVAL"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


@dataclass(frozen=True)
class ClientConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_env(
        cls,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> "ClientConfig":
        """
        Resolve settings from explicit arguments first, then the environment,
        then the built-in defaults.
        """
        key = api_key or os.getenv(API_KEY_ENV, "").strip()
        if not key:
            raise ConfigurationError(
                f"An API key is required. Pass api_key=... or set the {API_KEY_ENV} environment variable."
            )
        url = base_url or os.getenv(BASE_URL_ENV, "").strip() or DEFAULT_BASE_URL
        return cls(
            api_key=key,
            base_url=url.rstrip("/"),
            timeout=timeout if timeout is not None else _env_float(TIMEOUT_ENV, DEFAULT_TIMEOUT),
            poll_interval=(
                poll_interval if poll_interval is not None else _env_float(POLL_INTERVAL_ENV, DEFAULT_POLL_INTERVAL)
            ),
        )
