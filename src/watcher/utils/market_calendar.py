# src/watcher/utils/market_calendar.py
from __future__ import annotations

import functools
from dataclasses import dataclass
from datetime import date, datetime, time as dtime
from enum import Enum
from typing import Literal, Optional

import pandas_market_calendars as mcal

# Extended hours (premarket). Scanner data covers 04:00 onward.
PRE_OPEN = dtime(4, 0)

# Regular trading hours (RTH)
RTH_OPEN = dtime(9, 30)
RTH_CLOSE = dtime(16, 0)

# Gap & reverse windows
CATALYST_SETUP_START = dtime(8, 0)
CATALYST_ACTIVE_END = dtime(13, 30)

WEEKEND_DAYS = frozenset({5, 6})  # Sat, Sun


class Phase(str, Enum):
    PRE_OPEN = "preopen"
    PREMARKET = "premarket"
    MARKET = "market"
    CLOSED = "closed"
    WEEKEND = "weekend"


CatalystMode = Literal["watchlist", "active"]


@dataclass(frozen=True, slots=True)
class TradingWindows:
    """
    Named intraday windows, all in the reference market timezone.
    Every window is half-open: start <= t < end.

    Trading days come from the exchange calendar: a day with no session
    (holiday) is treated exactly like a weekend day, and an early close cuts
    the market and catalyst-active windows short.
    """
    premarket_start: dtime = PRE_OPEN
    premarket_end: dtime = RTH_OPEN
    market_open: dtime = RTH_OPEN
    market_close: dtime = RTH_CLOSE
    catalyst_setup_start: dtime = CATALYST_SETUP_START
    catalyst_active_start: dtime = RTH_OPEN
    catalyst_active_end: dtime = CATALYST_ACTIVE_END
    weekend_days: frozenset[int] = WEEKEND_DAYS
    exchange: str = "XNYS"
    tz_name: str = "America/New_York"


DEFAULT_WINDOWS = TradingWindows()


@functools.lru_cache(maxsize=4)
def _exchange_calendar(name: str):
    # XNYS schedules carry holidays and early closes
    return mcal.get_calendar(name)


@functools.lru_cache(maxsize=16)
def _sessions(exchange: str, tz_name: str, year: int) -> dict[date, tuple[dtime, dtime]]:
    """trading day -> (open, close) wall-clock times in tz_name, for one year."""
    sched = _exchange_calendar(exchange).schedule(start_date=f"{year}-01-01", end_date=f"{year}-12-31")
    out: dict[date, tuple[dtime, dtime]] = {}
    for day, row in sched.iterrows():
        opened = row["market_open"].tz_convert(tz_name)
        closed = row["market_close"].tz_convert(tz_name)
        out[day.date()] = (opened.time(), closed.time())
    return out


def session_hours(day: date, windows: TradingWindows = DEFAULT_WINDOWS) -> Optional[tuple[dtime, dtime]]:
    """Exchange (open, close) for `day`, or None when the exchange is closed all day."""
    return _sessions(windows.exchange, windows.tz_name, day.year).get(day)


def in_window(t: dtime, start: dtime, end: dtime) -> bool:
    return start <= t < end


def _wall_time(now: datetime) -> dtime:
    return now.replace(tzinfo=None).time()


def is_off_day(now: datetime, windows: TradingWindows = DEFAULT_WINDOWS) -> bool:
    return now.weekday() in windows.weekend_days or session_hours(now.date(), windows) is None


def _close_for(now: datetime, windows: TradingWindows, end: dtime) -> dtime:
    session = session_hours(now.date(), windows)
    return min(end, session[1]) if session is not None else end


def classify_phase(now: datetime, windows: TradingWindows = DEFAULT_WINDOWS) -> Phase:
    """
    Map a local wall-clock instant to exactly one Phase.

    weekend/holiday wins over any intraday window. On trading days:
      [00:00, premarket_start)        -> PRE_OPEN
      [premarket_start, premarket_end) -> PREMARKET
      [market_open, close)             -> MARKET   (close = earlier of market_close and the exchange close)
      anything else                    -> CLOSED
    """
    if is_off_day(now, windows):
        return Phase.WEEKEND
    t = _wall_time(now)
    if in_window(t, windows.premarket_start, windows.premarket_end):
        return Phase.PREMARKET
    if in_window(t, windows.market_open, _close_for(now, windows, windows.market_close)):
        return Phase.MARKET
    if t < windows.premarket_start:
        return Phase.PRE_OPEN
    return Phase.CLOSED


def catalyst_mode(now: datetime, windows: TradingWindows = DEFAULT_WINDOWS) -> Optional[CatalystMode]:
    """'watchlist' during setup, 'active' during the active window, else None."""
    if is_off_day(now, windows):
        return None
    t = _wall_time(now)
    if in_window(t, windows.catalyst_setup_start, windows.catalyst_active_start):
        return "watchlist"
    if in_window(t, windows.catalyst_active_start, _close_for(now, windows, windows.catalyst_active_end)):
        return "active"
    return None
