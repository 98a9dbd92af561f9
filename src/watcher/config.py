from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import pandas_market_calendars as mcal
from dotenv import load_dotenv

from watcher.errors import ConfigError


@dataclass(frozen=True, slots=True)
class Settings:
    # notifier
    notifier: str = "console"             # "telegram" | "console"
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None
    thread_id: Optional[int] = None

    # premarket growth
    premarket_threshold: float = 10.0
    premarket_alert_step: float = 1.0
    scan_interval_s: float = 10.0
    send_on_startup: bool = False

    # market (shadow velocity)
    market_scan_interval_s: float = 10.0
    market_dashboard_interval_s: float = 30.0
    market_alert_cooldown_s: float = 300.0
    market_rvol_pump_delta: float = 5.0
    market_dump_threshold: float = -2.0
    market_top_n: int = 5

    # catalyst (gap & reverse)
    catalyst_watchlist_interval_s: float = 60.0
    catalyst_active_interval_s: float = 15.0

    # orchestrator / data source
    gatekeeper_interval_s: float = 30.0
    fetch_timeout_s: float = 30.0
    tv_cookie: Optional[str] = None
    timezone: str = "America/New_York"
    exchange: str = "XNYS"               # pandas_market_calendars name; holidays and early closes
    log_level: str = "INFO"


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _exchange(raw: Optional[str]) -> str:
    name = (raw or "XNYS").strip()
    if name not in mcal.get_calendar_names():
        raise ConfigError(f"EXCHANGE_CALENDAR {name!r} is not a known market calendar")
    return name


def settings_from_env(*, dotenv: bool = True) -> Settings:
    """Read Settings from the environment (and .env). Raises ConfigError."""
    if dotenv:
        load_dotenv()

    token = os.getenv("BOT_TOKEN") or None
    chat = os.getenv("CHAT_ID") or None
    notifier = (os.getenv("NOTIFIER") or ("telegram" if token else "console")).strip().lower()
    if notifier not in ("telegram", "console"):
        raise ConfigError(f"NOTIFIER must be 'telegram' or 'console', got {notifier!r}")
    if notifier == "telegram" and (not token or not chat):
        raise ConfigError("BOT_TOKEN and CHAT_ID are required when NOTIFIER=telegram")

    thread = os.getenv("THREAD_ID")
    try:
        thread_id = int(thread) if thread else None
    except ValueError:
        raise ConfigError(f"THREAD_ID must be an integer, got {thread!r}") from None

    return Settings(
        notifier=notifier,
        bot_token=token,
        chat_id=chat,
        thread_id=thread_id,
        premarket_threshold=_float("PREMARKET_THRESHOLD", 10.0),
        premarket_alert_step=_float("PREMARKET_ALERT_STEP", 1.0),
        scan_interval_s=_float("SCAN_INTERVAL_S", 10.0),
        send_on_startup=_bool("SEND_ON_STARTUP", False),
        market_scan_interval_s=_float("MARKET_SCAN_INTERVAL_S", 10.0),
        market_dashboard_interval_s=_float("MARKET_DASHBOARD_INTERVAL_S", 30.0),
        market_alert_cooldown_s=_float("MARKET_ALERT_COOLDOWN_S", 300.0),
        market_rvol_pump_delta=_float("MARKET_RVOL_PUMP_DELTA", 5.0),
        market_dump_threshold=_float("MARKET_DUMP_THRESHOLD", -2.0),
        market_top_n=_int("MARKET_TOP_N", 5),
        catalyst_watchlist_interval_s=_float("CATALYST_WATCHLIST_INTERVAL_S", 60.0),
        catalyst_active_interval_s=_float("CATALYST_ACTIVE_INTERVAL_S", 15.0),
        gatekeeper_interval_s=_float("GATEKEEPER_INTERVAL_S", 30.0),
        fetch_timeout_s=_float("FETCH_TIMEOUT_S", 30.0),
        tv_cookie=os.getenv("TV_COOKIE") or None,
        timezone=os.getenv("TIMEZONE", "America/New_York"),
        exchange=_exchange(os.getenv("EXCHANGE_CALENDAR")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
