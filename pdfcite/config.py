"""
Environment configuration for pdfcite.

Every knob is read from a PDFCITE_* variable (LOG_LEVEL excepted). Blank
values fall back to the default; unparsable ones raise ConfigError naming
the variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, TypeVar

from pdfcite.errors import ConfigError

GRANULARITIES = ("tokens", "lines")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}

T = TypeVar("T")


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = (os.getenv(key) or "").strip()
    return value or default


def _env_as(key: str, default: T, convert: Callable[[str], T], expected: str) -> T:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return convert(raw)
    except ValueError as exc:
        raise ConfigError(key, expected, raw) from exc


def _env_flag(key: str, default: bool) -> bool:
    raw = _env(key)
    if raw is None:
        return default
    if raw.lower() in TRUTHY:
        return True
    if raw.lower() in FALSY:
        return False
    raise ConfigError(key, "a boolean (on/off, true/false, 1/0)", raw)


def _env_millis(key: str, default: int, minimum: int = 0) -> timedelta:
    millis = _env_as(key, default, int, "a whole number of milliseconds")
    return timedelta(milliseconds=max(minimum, millis))


def _env_choice(key: str, default: str, choices, normalize=str.lower) -> str:
    value = normalize(_env(key, default))
    if value not in choices:
        raise ConfigError(key, f"one of {', '.join(choices)}", value)
    return value


@dataclass(slots=True)
class AppConfig:
    chunk_api_url: Optional[str] = None
    http_timeout: float = 15.0
    first_load_settle: timedelta = timedelta(milliseconds=500)
    resize_settle: timedelta = timedelta(milliseconds=150)
    layout_poll_interval: timedelta = timedelta(milliseconds=50)
    resize_debounce: timedelta = timedelta(milliseconds=300)
    resize_threshold: float = 10.0
    granularity: str = "tokens"
    log_level: str = "INFO"
    auto_scroll: bool = True

    @property
    def fetch_enabled(self) -> bool:
        return bool(self.chunk_api_url)


def load_config() -> AppConfig:
    """Build the AppConfig from the environment. Raises ConfigError."""
    return AppConfig(
        chunk_api_url=_env("PDFCITE_CHUNK_API_URL"),
        http_timeout=_env_as("PDFCITE_HTTP_TIMEOUT_SECONDS", 15.0, float, "a number of seconds"),
        first_load_settle=_env_millis("PDFCITE_FIRST_LOAD_SETTLE_MS", 500),
        resize_settle=_env_millis("PDFCITE_RESIZE_SETTLE_MS", 150),
        layout_poll_interval=_env_millis("PDFCITE_LAYOUT_POLL_MS", 50, minimum=1),
        resize_debounce=_env_millis("PDFCITE_RESIZE_DEBOUNCE_MS", 300),
        resize_threshold=max(
            0.0, _env_as("PDFCITE_RESIZE_THRESHOLD_PX", 10.0, float, "a number of pixels")
        ),
        granularity=_env_choice("PDFCITE_GRANULARITY", "tokens", GRANULARITIES),
        log_level=_env_choice("LOG_LEVEL", "INFO", LOG_LEVELS, normalize=str.upper),
        auto_scroll=_env_flag("PDFCITE_AUTO_SCROLL", True),
    )
