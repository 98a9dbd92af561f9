from __future__ import annotations

import functools
from typing import Any, Callable, Optional

import structlog

from watcher.alerts.dispatcher import CooldownAlertDispatcher, DispatcherConfig, Trend, Trigger
from watcher.alerts.formatting import format_dashboard, format_trigger
from watcher.alerts.notifiers import Notifier
from watcher.alerts.scoring import DOWN_GATES, UP_GATES, DownGates, ScoredCandidate, UpGates, rank_down, rank_up
from watcher.ingest.source import DataSource, Query
from watcher.utils.ticker import PeriodicTicker
from watcher.utils.time import utc_now_s
from watcher.workers.base import ScanWorker

log = structlog.get_logger("market")


class MarketVelocityWorker(ScanWorker):
    """
    Regular-session scorer. Each scan ranks the snapshot into the up (momentum)
    and down (distribution) lists, dispatches NEW/PUMP/DUMP alerts for the up
    list and keeps one pinned dashboard message refreshed on its own interval.
    """
    name = "market"

    def __init__(
        self,
        source: DataSource,
        notifier: Notifier,
        *,
        dispatcher_cfg: Optional[DispatcherConfig] = None,
        top_n: int = 5,
        up_gates: UpGates = UP_GATES,
        down_gates: DownGates = DOWN_GATES,
        interval_s: float = 10.0,
        dashboard_interval_s: Optional[float] = 30.0,
        tz_name: str = "America/New_York",
        now_fn: Callable[[], float] = utc_now_s,
    ):
        super().__init__(source, notifier, interval_s=interval_s, now_fn=now_fn)
        self.dispatcher = CooldownAlertDispatcher(dispatcher_cfg, now_fn=now_fn)
        self.top_n = top_n
        self.up_gates = up_gates
        self.down_gates = down_gates
        self.dashboard_interval_s = dashboard_interval_s
        self.tz_name = tz_name

        self.up: list[ScoredCandidate] = []
        self.down: list[ScoredCandidate] = []
        self.trends: dict[str, Trend] = {}
        self.dashboard_id: Optional[int] = None
        self._dash_ticker: Optional[PeriodicTicker] = None
        self._dash_busy = False

    def reset(self) -> None:
        self.dispatcher.reset()
        self.up, self.down, self.trends = [], [], {}
        self.dashboard_id = None

    async def start(self) -> None:
        already = self.is_running or self.is_starting
        await super().start()
        if already or not self.is_running or not self.dashboard_interval_s:
            return
        await self.refresh_dashboard()
        if self.is_running:
            self._dash_ticker = PeriodicTicker(self.dashboard_interval_s, self.refresh_dashboard,
                                               name=f"{self.name}-dashboard")
            self._dash_ticker.start()

    async def on_stop(self) -> None:
        if self._dash_ticker is not None:
            self._dash_ticker.stop()
            self._dash_ticker = None

    async def scan(self, first_scan: bool) -> bool:
        run = self.run_id
        rows = await self._fetch(Query.MARKET)
        if not self.is_current(run):
            return False

        up = rank_up(rows, self.top_n, self.up_gates)
        down = rank_down(rows, self.top_n, self.down_gates)
        now = self._now()
        # before dispatch: trends read the previous cycle's snapshot
        trends = {c.symbol: self.dispatcher.trend(c.symbol, c.row.change_from_open, now) for c in up}

        delivered = await self.dispatcher.dispatch(up, down, functools.partial(self._send_trigger, run))
        if not self.is_current(run):
            return False

        self.up, self.down, self.trends = up, down, trends
        log.info("market_scan", rows=len(rows), up=len(up), down=len(down), alerts=len(delivered))
        return True

    async def _send_trigger(self, run: int, trig: Trigger) -> bool:
        if not self.is_current(run):
            return False
        res = await self._alert(format_trigger(trig), formatted=True)
        if res.success:
            log.info("market_alert", trigger=trig.kind, symbol=trig.symbol)
        return res.success

    async def refresh_dashboard(self) -> None:
        """First call sends and pins the dashboard; later calls edit it in place."""
        if not self.is_running or self._dash_busy:
            return
        self._dash_busy = True
        try:
            text = format_dashboard(self.up, self.down, self.trends, self._now(), self.tz_name)
            if self.dashboard_id is None:
                res = await self._deliver(text, formatted=True)
                if not res.success or res.message_id is None:
                    log.warning("dashboard_send_failed", err=res.error)
                    return
                self.dashboard_id = res.message_id
                pinned = await self._call(self.notifier.pin, res.message_id)
                log.info("dashboard_pinned", message_id=res.message_id, pinned=pinned.success)
            else:
                res = await self._call(self.notifier.edit, self.dashboard_id, text)
                if not res.success:
                    log.warning("dashboard_edit_failed", message_id=self.dashboard_id, err=res.error)
        finally:
            self._dash_busy = False

    def extra_state(self) -> dict[str, Any]:
        return {
            "dashboard_id": self.dashboard_id,
            "up_count": len(self.up),
            "down_count": len(self.down),
            "tracked_symbols": len(self.dispatcher.prev),
            "cooldowns": len(self.dispatcher.cooldowns),
        }
