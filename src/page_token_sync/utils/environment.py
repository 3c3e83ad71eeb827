"""Settings loaded from ``PAGE_TOKENS_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final, Mapping, Tuple

logger = logging.getLogger("page-token-sync.utils.environment")

DEFAULT_GRAPH_URL: Final[str] = "https://graph.facebook.com/v19.0"

_PREFIX: Final[str] = "PAGE_TOKENS_"
_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _get(env: Mapping[str, str], key: str) -> str | None:
    raw = env.get(_PREFIX + key)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _number(env: Mapping[str, str], key: str, default: float, cast=float):  # noqa: ANN001
    raw = _get(env, key)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{_PREFIX}{key} must not be negative, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the service, server and CLI."""

    storage_dir: str | None = None
    graph_url: str = DEFAULT_GRAPH_URL
    app_secret: str | None = None
    connect_timeout: float = 5.0
    read_timeout: float = 20.0
    sync_workers: int = 4
    sweep_interval: float = 0.0
    sweep_on_start: bool = False
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Read settings from *env* (defaults to ``os.environ``).

        Raises
        ------
        ValueError
            If a numeric variable cannot be parsed or is negative.
        """
        env = os.environ if env is None else env
        settings = cls(
            storage_dir=_get(env, "STORAGE_DIR"),
            graph_url=(_get(env, "GRAPH_URL") or DEFAULT_GRAPH_URL).rstrip("/"),
            app_secret=_get(env, "APP_SECRET"),
            connect_timeout=_number(env, "HTTP_CONNECT_TIMEOUT", 5.0),
            read_timeout=_number(env, "HTTP_READ_TIMEOUT", 20.0),
            sync_workers=max(1, _number(env, "SYNC_WORKERS", 4, int)),
            sweep_interval=_number(env, "SWEEP_INTERVAL", 0.0),
            sweep_on_start=_truthy(env.get(_PREFIX + "SWEEP_ON_START")),
            host=_get(env, "HOST") or "127.0.0.1",
            port=_number(env, "PORT", 5000, int),
            log_level=(_get(env, "LOG_LEVEL") or "INFO").upper(),
        )
        if settings.app_secret is None:
            logger.debug("%sAPP_SECRET not set – appsecret_proof disabled", _PREFIX)
        return settings
