from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import structlog

from watcher.alerts.formatting import format_step_alert
from watcher.alerts.notifiers import Notifier
from watcher.alerts.state import AlertState
from watcher.alerts.stepper import StepAlertEngine
from watcher.ingest.source import DataSource, Query
from watcher.utils.time import utc_now_s
from watcher.workers.base import ScanWorker

log = structlog.get_logger("premarket")


class PremarketGrowthWorker(ScanWorker):
    """Premarket gainers: one alert per symbol per `step` percent of growth."""
    name = "premarket"
    status_label = "Premarket growth scanner"

    def __init__(
        self,
        source: DataSource,
        notifier: Notifier,
        *,
        engine: Optional[StepAlertEngine] = None,
        interval_s: float = 10.0,
        now_fn: Callable[[], float] = utc_now_s,
    ):
        super().__init__(source, notifier, interval_s=interval_s, now_fn=now_fn)
        self.engine = engine or StepAlertEngine()
        self.state = AlertState()

    def reset(self) -> None:
        self.state.reset()

    async def scan(self, first_scan: bool) -> bool:
        run = self.run_id
        rows = await self._fetch(Query.PREMARKET)
        if not self.is_current(run):
            return False
        if not rows:
            # an empty answer is not a baseline; the first-scan flag stays set
            log.debug("premarket_scan_empty", first_scan=first_scan)
            return False

        result = self.engine.evaluate(rows, self.state, first_scan=first_scan)
        if result.suppressed:
            self.state.apply(result.baseline())
            return True

        decisions = result.to_send
        if not decisions:
            log.debug("premarket_scan", rows=len(rows), rejected=result.rejected, alerts=0)
            return True

        results = await asyncio.gather(*(self._alert(format_step_alert(d)) for d in decisions))
        if not self.is_current(run):
            return False

        updates = {d.symbol: d.record() for d, res in zip(decisions, results) if res.success}
        self.state.apply(updates)
        log.info("premarket_scan", rows=len(rows), rejected=result.rejected,
                 eligible=len(decisions), sent=len(updates))
        return True

    def extra_state(self) -> dict[str, Any]:
        return {"tracked_symbols": len(self.state)}
