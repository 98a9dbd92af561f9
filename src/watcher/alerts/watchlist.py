from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from watcher.utils.market_calendar import CatalystMode
from watcher.utils.types import MarketRow, SetupRow, Strategy, ticker

log = structlog.get_logger("watchlist")


@dataclass(frozen=True, slots=True)
class WatchEntry:
    symbol: str
    gap: float           # premarket change %
    pre_volume: float
    score: float


@dataclass(frozen=True, slots=True)
class WatchlistConfig:
    # setup filter
    min_abs_gap: float = 4.0
    min_pre_volume: float = 100_000
    # FADE: gapped up hard, now trading below the open
    fade_min_gap: float = 4.0
    fade_max_open_change: float = -0.5
    # BOUNCE: gapped down hard, now trading above the open
    bounce_max_gap: float = -8.0
    bounce_min_open_change: float = 0.5


@dataclass(frozen=True, slots=True)
class CatalystTrigger:
    strategy: Strategy
    entry: WatchEntry
    open_change: float

    @property
    def symbol(self) -> str:
        return self.entry.symbol


def watch_score(gap: float, pre_volume: float) -> float:
    return abs(gap) * math.log10(pre_volume or 1)


class WatchlistTransitionEngine:
    """
    Two modes:
      watchlist  accumulate setup rows (never overwrite an existing entry)
      active     compare live change-from-open of watched symbols against
                 the FADE / BOUNCE rules

    A symbol triggers at most once per watchlist lifetime. Switching modes
    keeps both the watchlist and the triggered set; only clear() resets them.
    """
    def __init__(self, cfg: Optional[WatchlistConfig] = None, mode: CatalystMode = "watchlist"):
        self.cfg = cfg or WatchlistConfig()
        self.mode: CatalystMode = mode
        self.watchlist: dict[str, WatchEntry] = {}
        self.triggered: set[str] = set()

    @property
    def is_watchlist_only(self) -> bool:
        return self.mode == "watchlist"

    def set_mode(self, mode: CatalystMode) -> bool:
        """Returns True when the mode actually changed."""
        if mode not in ("watchlist", "active"):
            raise ValueError(f"unknown catalyst mode: {mode!r}")
        if mode == self.mode:
            return False
        self.mode = mode
        return True

    def qualifies(self, row: SetupRow) -> bool:
        return abs(row.premarket_change) >= self.cfg.min_abs_gap and row.premarket_volume >= self.cfg.min_pre_volume

    def build(self, rows: Iterable[SetupRow]) -> list[WatchEntry]:
        added: list[WatchEntry] = []
        for row in rows:
            if row.symbol in self.watchlist:
                continue
            if not self.qualifies(row):
                log.debug("setup_rejected", symbol=row.symbol, gap=row.premarket_change)
                continue
            entry = WatchEntry(
                symbol=row.symbol,
                gap=row.premarket_change,
                pre_volume=row.premarket_volume,
                score=watch_score(row.premarket_change, row.premarket_volume),
            )
            self.watchlist[row.symbol] = entry
            added.append(entry)
            log.info("watchlist_added", ticker=ticker(row.symbol), gap=round(entry.gap, 1),
                     pre_vol=int(entry.pre_volume), score=round(entry.score, 1))
        return added

    def match(self, entry: WatchEntry, open_change: float) -> Optional[Strategy]:
        c = self.cfg
        if entry.gap > c.fade_min_gap and open_change < c.fade_max_open_change:
            return "FADE"
        if entry.gap < c.bounce_max_gap and open_change > c.bounce_min_open_change:
            return "BOUNCE"
        return None

    def check(self, rows: Iterable[MarketRow]) -> list[CatalystTrigger]:
        """Candidate triggers for this cycle. Does not mark anything triggered."""
        out: list[CatalystTrigger] = []
        seen: set[str] = set()
        for row in rows:
            if row.symbol in self.triggered or row.symbol in seen:
                continue
            seen.add(row.symbol)
            entry = self.watchlist.get(row.symbol)
            if entry is None or row.change_from_open is None:
                continue
            strategy = self.match(entry, row.change_from_open)
            log.debug("watchlist_check", ticker=ticker(row.symbol), gap=entry.gap,
                      open_change=row.change_from_open, strategy=strategy)
            if strategy is not None:
                out.append(CatalystTrigger(strategy=strategy, entry=entry, open_change=row.change_from_open))
        return out

    def mark_triggered(self, symbol: str) -> None:
        self.triggered.add(symbol)

    def clear(self) -> None:
        self.watchlist.clear()
        self.triggered.clear()
