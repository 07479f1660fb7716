"""Runtime settings for River of News, read from RIVER_* environment variables."""

import os
from dataclasses import dataclass

from river_of_news.errors import InvalidSettingsError

DEFAULT_DB_PATH = "river_of_news.db"
DEFAULT_POLL_INTERVAL_MINUTES = 15
DEFAULT_POLL_TICK_SECONDS = 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_RETENTION_DAYS = 30
DEFAULT_RETENTION_SWEEP_SECONDS = 3600
DEFAULT_UNHEALTHY_THRESHOLD = 3
DEFAULT_BACKOFF_MINUTES = (5, 15, 60)
DEFAULT_SNIPPET_LENGTH = 1000
DEFAULT_MAX_PAGE_SIZE = 200
DEFAULT_LOG_LEVEL = "INFO"

# Settings field -> environment variable
ENV_VARS = {
    "db_path": "RIVER_DB_PATH",
    "poll_interval_minutes": "RIVER_POLL_INTERVAL_MINUTES",
    "poll_tick_seconds": "RIVER_POLL_TICK_SECONDS",
    "request_timeout_seconds": "RIVER_REQUEST_TIMEOUT_SECONDS",
    "retention_days": "RIVER_RETENTION_DAYS",
    "retention_sweep_seconds": "RIVER_RETENTION_SWEEP_SECONDS",
    "unhealthy_threshold": "RIVER_UNHEALTHY_THRESHOLD",
    "backoff_minutes": "RIVER_BACKOFF_MINUTES",
    "snippet_length_limit": "RIVER_SNIPPET_LENGTH",
    "max_page_size": "RIVER_MAX_PAGE_SIZE",
    "log_level": "RIVER_LOG_LEVEL",
}

_POSITIVE_FIELDS = (
    "poll_interval_minutes",
    "poll_tick_seconds",
    "request_timeout_seconds",
    "retention_days",
    "retention_sweep_seconds",
    "unhealthy_threshold",
    "snippet_length_limit",
    "max_page_size",
)


@dataclass(frozen=True)
class Settings:
    """Polling, retention and query settings.

    Backoff tiers apply once a feed reaches ``unhealthy_threshold``
    consecutive failures; the last tier is the ceiling.
    """

    db_path: str = DEFAULT_DB_PATH
    poll_interval_minutes: int = DEFAULT_POLL_INTERVAL_MINUTES
    poll_tick_seconds: int = DEFAULT_POLL_TICK_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    retention_days: int = DEFAULT_RETENTION_DAYS
    retention_sweep_seconds: int = DEFAULT_RETENTION_SWEEP_SECONDS
    unhealthy_threshold: int = DEFAULT_UNHEALTHY_THRESHOLD
    backoff_minutes: tuple[int, ...] = DEFAULT_BACKOFF_MINUTES
    snippet_length_limit: int = DEFAULT_SNIPPET_LENGTH
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        for name in _POSITIVE_FIELDS:
            if getattr(self, name) <= 0:
                raise InvalidSettingsError(ENV_VARS[name], "must be positive")
        if not self.backoff_minutes or any(m <= 0 for m in self.backoff_minutes):
            raise InvalidSettingsError(
                ENV_VARS["backoff_minutes"],
                "must be a comma-separated list of positive minutes",
            )

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """Build settings from the environment, falling back to defaults."""
        env = os.environ if environ is None else environ
        return cls(
            db_path=env.get(ENV_VARS["db_path"]) or DEFAULT_DB_PATH,
            poll_interval_minutes=_int(env, "poll_interval_minutes", DEFAULT_POLL_INTERVAL_MINUTES),
            poll_tick_seconds=_int(env, "poll_tick_seconds", DEFAULT_POLL_TICK_SECONDS),
            request_timeout_seconds=_float(
                env, "request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            retention_days=_int(env, "retention_days", DEFAULT_RETENTION_DAYS),
            retention_sweep_seconds=_int(
                env, "retention_sweep_seconds", DEFAULT_RETENTION_SWEEP_SECONDS
            ),
            unhealthy_threshold=_int(env, "unhealthy_threshold", DEFAULT_UNHEALTHY_THRESHOLD),
            backoff_minutes=_int_tuple(env, "backoff_minutes", DEFAULT_BACKOFF_MINUTES),
            snippet_length_limit=_int(env, "snippet_length_limit", DEFAULT_SNIPPET_LENGTH),
            max_page_size=_int(env, "max_page_size", DEFAULT_MAX_PAGE_SIZE),
            log_level=(env.get(ENV_VARS["log_level"]) or DEFAULT_LOG_LEVEL).upper(),
        )


def _raw(env, field_name: str) -> str | None:
    raw = env.get(ENV_VARS[field_name])
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _int(env, field_name: str, default: int) -> int:
    raw = _raw(env, field_name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidSettingsError(ENV_VARS[field_name], f"expected an integer, got {raw!r}")


def _float(env, field_name: str, default: float) -> float:
    raw = _raw(env, field_name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidSettingsError(ENV_VARS[field_name], f"expected a number, got {raw!r}")


def _int_tuple(env, field_name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = _raw(env, field_name)
    if raw is None:
        return default
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise InvalidSettingsError(
            ENV_VARS[field_name], f"expected comma-separated integers, got {raw!r}"
        )
