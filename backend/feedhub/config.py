"""Environment-driven settings for the feed service."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .market.clob_client import CLOB_API_URL
from .market.sim_params import BOOK_TICK_SECONDS, HISTORY_TICK_SECONDS

_FALSE = {"0", "false", "no", "off"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw not in _FALSE


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True, slots=True)
class FeedSettings:
    """Runtime configuration. Read once at startup with from_env()."""

    clob_api_url: str = CLOB_API_URL
    live_books: bool = True
    clob_timeout: float = 5.0
    clob_max_retries: int = 2
    history_interval: float = HISTORY_TICK_SECONDS
    book_interval: float = BOOK_TICK_SECONDS
    evict_idle: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> FeedSettings:
        """Build settings from environment variables.

        Raises ValueError if a numeric variable is set but not parseable.
        """
        return cls(
            clob_api_url=os.environ.get("CLOB_API_URL", "").strip() or CLOB_API_URL,
            live_books=_env_flag("CLOB_LIVE_BOOKS", True),
            clob_timeout=_env_float("CLOB_TIMEOUT_SECONDS", 5.0),
            clob_max_retries=_env_int("CLOB_MAX_RETRIES", 2),
            history_interval=_env_float("HISTORY_TICK_SECONDS", HISTORY_TICK_SECONDS),
            book_interval=_env_float("BOOK_TICK_SECONDS", BOOK_TICK_SECONDS),
            evict_idle=_env_flag("FEED_EVICT_IDLE", False),
            log_level=os.environ.get("LOG_LEVEL", "").strip().upper() or "INFO",
        )
