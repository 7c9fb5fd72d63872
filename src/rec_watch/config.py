"""
Runtime settings, read from the environment (and an optional .env file).
"""

import os
from dataclasses import dataclass, replace
from typing import Any, Final, Optional

from dotenv import load_dotenv

DEFAULT_TARGET_URL: Final[str] = (
    "https://anc.ca.apm.activecommunities.com/burnaby/activity/search/detail/70284"
    "?onlineSiteId=0&from_original_cui=true"
)
DEFAULT_POLL_INTERVAL: Final[int] = 30
DEFAULT_HOST: Final[str] = "127.0.0.1"
DEFAULT_PORT: Final[int] = 3001
DEFAULT_NAV_TIMEOUT: Final[float] = 60.0
DEFAULT_SETTLE_DELAY: Final[float] = 3.0
DEFAULT_BROWSER_PORT: Final[int] = 9111
DEFAULT_BROWSER_IDLE_TIMEOUT: Final[int] = 500
DEFAULT_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    target_url: str = DEFAULT_TARGET_URL
    poll_interval: int = DEFAULT_POLL_INTERVAL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    nav_timeout: float = DEFAULT_NAV_TIMEOUT
    settle_delay: float = DEFAULT_SETTLE_DELAY
    browser_port: int = DEFAULT_BROWSER_PORT
    browser_idle_timeout: int = DEFAULT_BROWSER_IDLE_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    auto_open: bool = True
    desktop_notify: bool = True
    bot_token: Optional[str] = None
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_settings(dotenv: bool = True) -> Settings:
    """Build Settings from environment variables, loading .env first."""
    if dotenv:
        load_dotenv()

    poll_interval = _env_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL)
    if poll_interval <= 0:
        raise ValueError("POLL_INTERVAL must be positive")

    return Settings(
        target_url=os.environ.get("TARGET_URL") or DEFAULT_TARGET_URL,
        poll_interval=poll_interval,
        host=os.environ.get("HOST") or DEFAULT_HOST,
        port=_env_int("PORT", DEFAULT_PORT),
        nav_timeout=_env_float("NAV_TIMEOUT", DEFAULT_NAV_TIMEOUT),
        settle_delay=_env_float("SETTLE_DELAY", DEFAULT_SETTLE_DELAY),
        browser_port=_env_int("BROWSER_PORT", DEFAULT_BROWSER_PORT),
        browser_idle_timeout=_env_int(
            "BROWSER_IDLE_TIMEOUT", DEFAULT_BROWSER_IDLE_TIMEOUT
        ),
        user_agent=os.environ.get("USER_AGENT") or DEFAULT_USER_AGENT,
        auto_open=_env_bool("AUTO_OPEN", True),
        desktop_notify=_env_bool("DESKTOP_NOTIFY", True),
        bot_token=os.environ.get("BOT_TOKEN") or None,
        log_level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
    )
