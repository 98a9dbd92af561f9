from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog

from watcher.alerts.formatting import format_status
from watcher.alerts.notifiers import Notifier
from watcher.ingest.source import DataSource, Query, Row
from watcher.utils.ticker import PeriodicTicker
from watcher.utils.time import utc_now_s
from watcher.utils.types import NotifyResult

log = structlog.get_logger("worker")


class ScanWorker:
    """
    Lifecycle shared by every scanner:

      start()  idempotent; resets per-run state, marks the next scan as the
               first one, sends the optional "started" status, runs one scan
               immediately and then schedules the rest on a PeriodicTicker.
      stop()   idempotent; cancels the ticker. A scan already in flight is
               allowed to finish but its result is dropped.

    Every start() opens a new run (run_id). A scan belongs to the run it began
    in and applies nothing once that run is over, even if the worker has been
    started again meanwhile.

    Ticks never overlap within a run: a tick that finds the run's previous
    scan still running is skipped and counted in skipped_ticks.

    Subclasses implement scan(first_scan) and return True when the data source
    answered (the first-scan flag is cleared only then).
    """
    name = "worker"
    status_label: Optional[str] = None   # set to send "started"/"stopped" messages

    def __init__(
        self,
        source: DataSource,
        notifier: Notifier,
        *,
        interval_s: float,
        now_fn: Callable[[], float] = utc_now_s,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.source = source
        self.notifier = notifier
        self.interval_s = float(interval_s)
        self._now = now_fn

        self.is_running = False
        self.is_starting = False
        self.is_first_scan = True
        self._run_id = 0
        self._busy_run: Optional[int] = None
        self._ticker: Optional[PeriodicTicker] = None

        # observability
        self.alert_count = 0
        self.scan_count = 0
        self.failed_scans = 0
        self.skipped_ticks = 0

    # ---- lifecycle ----

    async def start(self) -> None:
        if self.is_running or self.is_starting:
            return
        self.is_starting = True
        try:
            self._run_id += 1
            self.reset()
            self.is_first_scan = True
            self.is_running = True
            try:
                await self.on_start()
            except Exception:
                self.is_running = False
                await self._status(False, "failed to start")
                raise
            log.info("worker_started", worker=self.name, interval_s=self.interval_s)
            await self._tick()
            if self.is_running:
                self._schedule(self.interval_s)
        finally:
            self.is_starting = False

    async def stop(self) -> None:
        if not self.is_running:
            return
        self.is_running = False
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
        try:
            await self.on_stop()
        finally:
            log.info("worker_stopped", worker=self.name, alerts=self.alert_count, scans=self.scan_count)
            await self._status(False)

    def get_state(self) -> dict[str, Any]:
        state: dict[str, Any] = {
            "name": self.name,
            "is_running": self.is_running,
            "is_starting": self.is_starting,
            "is_first_scan": self.is_first_scan,
            "run_id": self._run_id,
            "interval_s": self.interval_s,
            "alert_count": self.alert_count,
            "scan_count": self.scan_count,
            "failed_scans": self.failed_scans,
            "skipped_ticks": self.skipped_ticks,
        }
        state.update(self.extra_state())
        return state

    # ---- hooks ----

    def reset(self) -> None:
        """Drop per-run state. Called at the top of every start()."""

    async def on_start(self) -> None:
        await self._status(True)

    async def on_stop(self) -> None:
        pass

    async def scan(self, first_scan: bool) -> bool:
        raise NotImplementedError

    def extra_state(self) -> dict[str, Any]:
        return {}

    # ---- scheduling ----

    def _schedule(self, interval_s: float) -> None:
        if self._ticker is not None:
            self._ticker.stop()
        self.interval_s = float(interval_s)
        self._ticker = PeriodicTicker(self.interval_s, self._tick, name=f"{self.name}-scan")
        self._ticker.start()

    async def _tick(self) -> None:
        if not self.is_running:
            return
        run = self._run_id
        if self._busy_run == run:
            self.skipped_ticks += 1
            log.debug("tick_skipped", worker=self.name)
            return
        self._busy_run = run
        try:
            answered = await self.scan(self.is_first_scan)
            if answered and self.is_current(run):
                self.is_first_scan = False
        except Exception as e:
            self.failed_scans += 1
            log.warning("scan_failed", worker=self.name, err=str(e), err_type=type(e).__name__)
        finally:
            if self._busy_run == run:
                self._busy_run = None

    @property
    def run_id(self) -> int:
        return self._run_id

    def is_current(self, run: int) -> bool:
        """True while run `run` is the live one. Scans check it after every await."""
        return self.is_running and run == self._run_id

    # ---- helpers for subclasses ----

    async def _fetch(self, query: Query) -> Sequence[Row]:
        rows = await self.source.fetch(query)
        self.scan_count += 1
        return rows

    async def _call(self, fn: Callable[..., Awaitable[NotifyResult]], *args: Any) -> NotifyResult:
        """Notifier call that never raises; a raised exception is a failed send."""
        try:
            return await fn(*args)
        except Exception as e:
            log.warning("notify_raised", worker=self.name, op=getattr(fn, "__name__", "?"), err=str(e))
            return NotifyResult(success=False, error=str(e))

    async def _deliver(self, text: str, *, formatted: bool = False) -> NotifyResult:
        fn = self.notifier.send_formatted if formatted else self.notifier.send
        return await self._call(fn, text)

    async def _alert(self, text: str, *, formatted: bool = False) -> NotifyResult:
        res = await self._deliver(text, formatted=formatted)
        if res.success:
            self.alert_count += 1
        else:
            log.warning("alert_not_delivered", worker=self.name, err=res.error)
        return res

    async def _status(self, started: bool, window: str = "") -> None:
        if self.status_label is None:
            return
        res = await self._deliver(format_status(self.status_label, started, window))
        if not res.success:
            log.warning("status_not_delivered", worker=self.name, started=started, err=res.error)
