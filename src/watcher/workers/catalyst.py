from __future__ import annotations

from typing import Any, Callable, Optional

import structlog

from watcher.alerts.formatting import format_catalyst_alert
from watcher.alerts.notifiers import Notifier
from watcher.alerts.watchlist import WatchlistConfig, WatchlistTransitionEngine
from watcher.ingest.source import DataSource, Query
from watcher.utils.market_calendar import CatalystMode
from watcher.utils.time import utc_now_s
from watcher.workers.base import ScanWorker

log = structlog.get_logger("catalyst")


class CatalystWorker(ScanWorker):
    """
    Gap & reverse. In watchlist mode it collects premarket gappers; in active
    mode it checks the watched symbols for FADE / BOUNCE once the session is open.
    The watchlist and the triggered set survive mode switches and are cleared on stop().
    """
    name = "catalyst"

    def __init__(
        self,
        source: DataSource,
        notifier: Notifier,
        *,
        cfg: Optional[WatchlistConfig] = None,
        mode: CatalystMode = "watchlist",
        watchlist_interval_s: float = 60.0,
        active_interval_s: float = 15.0,
        now_fn: Callable[[], float] = utc_now_s,
    ):
        self.intervals: dict[str, float] = {"watchlist": watchlist_interval_s, "active": active_interval_s}
        super().__init__(source, notifier, interval_s=self.intervals[mode], now_fn=now_fn)
        self.engine = WatchlistTransitionEngine(cfg, mode)

    @property
    def mode(self) -> CatalystMode:
        return self.engine.mode

    async def start(self) -> None:
        if not (self.is_running or self.is_starting):
            self.interval_s = self.intervals[self.engine.mode]
        await super().start()

    async def on_stop(self) -> None:
        self.engine.clear()

    async def set_mode(self, mode: CatalystMode) -> bool:
        """
        Switch modes. A running worker reschedules on the new interval and
        scans once right away. Returns False when already in `mode`.
        """
        if not self.engine.set_mode(mode):
            return False
        interval = self.intervals[mode]
        log.info("catalyst_mode", mode=mode, interval_s=interval, watchlist=len(self.engine.watchlist))
        if not self.is_running:
            self.interval_s = interval
            return True
        self._schedule(interval)
        await self._tick()
        return True

    async def scan(self, first_scan: bool) -> bool:
        run = self.run_id
        if self.engine.is_watchlist_only:
            rows = await self._fetch(Query.SETUP)
            if not self.is_current(run):
                return False
            added = self.engine.build(rows)
            log.info("watchlist_scan", rows=len(rows), added=len(added), total=len(self.engine.watchlist))
            return True

        if not self.engine.watchlist:
            log.debug("watchlist_empty_skip")
            return False

        rows = await self._fetch(Query.MARKET)
        if not self.is_current(run):
            return False
        triggers = self.engine.check(rows)
        for trig in triggers:
            if not self.is_current(run):
                break
            res = await self._alert(format_catalyst_alert(trig))
            if res.success:
                self.engine.mark_triggered(trig.symbol)
                log.info("catalyst_trigger", strategy=trig.strategy, symbol=trig.symbol,
                         gap=round(trig.entry.gap, 1), open_change=round(trig.open_change, 2))
        return True

    def extra_state(self) -> dict[str, Any]:
        return {
            "mode": self.engine.mode,
            "watchlist_size": len(self.engine.watchlist),
            "triggered_count": len(self.engine.triggered),
        }
