from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, Sequence

import structlog

from watcher.utils.market_calendar import DEFAULT_WINDOWS, Phase, TradingWindows, classify_phase
from watcher.utils.ticker import PeriodicTicker
from watcher.utils.time import local_now

log = structlog.get_logger("orchestrator")


class Worker(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def get_state(self) -> dict[str, Any]: ...


@dataclass(frozen=True, slots=True)
class WorkerBinding:
    """
    A worker plus when it should run. `mode_for`, when set, names the mode the
    worker must be in at `now`; the orchestrator calls worker.set_mode() to get
    it there (before start, or while running).
    """
    name: str
    worker: Worker
    should_run: Callable[[datetime, Phase], bool]
    mode_for: Optional[Callable[[datetime], Optional[str]]] = None


def in_phase(*phases: Phase) -> Callable[[datetime, Phase], bool]:
    wanted = frozenset(phases)
    return lambda _now, phase: phase in wanted


class Orchestrator:
    """
    Polls the trading calendar and starts/stops workers to match the phase.

    One check runs immediately on start() and then every interval_s. Checks
    never overlap: a check that fires while the previous one is still
    starting/stopping workers is skipped. A failure toggling one worker is
    logged with its name and does not affect the others.
    """
    def __init__(
        self,
        bindings: Sequence[WorkerBinding],
        *,
        interval_s: float = 30.0,
        windows: TradingWindows = DEFAULT_WINDOWS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.bindings = list(bindings)
        self.interval_s = float(interval_s)
        self.windows = windows
        self._clock = clock or (lambda: local_now(windows.tz_name))
        self._ticker: Optional[PeriodicTicker] = None
        self._busy = False
        self.running = False
        self.last_phase: Optional[Phase] = None
        self.checks = 0
        self.skipped_checks = 0

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        log.info("orchestrator_started", workers=[b.name for b in self.bindings], interval_s=self.interval_s)
        await self.check()
        if self.running:
            self._ticker = PeriodicTicker(self.interval_s, self.check, name="orchestrator")
            self._ticker.start()

    async def stop(self) -> None:
        """Cancel polling, let a check already in flight finish, then stop every worker concurrently."""
        self.running = False
        if self._ticker is not None:
            self._ticker.stop()
            await self._ticker.wait_inflight()
            self._ticker = None
        results = await asyncio.gather(*(self._stop_one(b) for b in self.bindings), return_exceptions=True)
        for b, res in zip(self.bindings, results):
            if isinstance(res, BaseException):
                log.error("worker_stop_failed", worker=b.name, err=str(res), err_type=type(res).__name__)
        log.info("orchestrator_stopped")

    async def check(self) -> None:
        if not self.running:
            return
        if self._busy:
            self.skipped_checks += 1
            log.debug("check_skipped")
            return
        self._busy = True
        try:
            now = self._clock()
            phase = classify_phase(now, self.windows)
            if phase is not self.last_phase:
                log.info("phase_changed", phase=phase.value, prev=self.last_phase.value if self.last_phase else None,
                         at=now.strftime("%Y-%m-%d %H:%M"))
                self.last_phase = phase
            self.checks += 1
            for b in self.bindings:
                if not self.running:
                    break
                await self._reconcile(b, now, phase)
        finally:
            self._busy = False

    async def _reconcile(self, b: WorkerBinding, now: datetime, phase: Phase) -> None:
        try:
            state = b.worker.get_state()
            if b.should_run(now, phase):
                mode = b.mode_for(now) if b.mode_for is not None else None
                if mode is not None and state.get("mode") != mode:
                    log.info("worker_mode_switch", worker=b.name, mode=mode, prev=state.get("mode"))
                    await b.worker.set_mode(mode)  # type: ignore[attr-defined]
                if not state.get("is_running") and not state.get("is_starting"):
                    log.info("worker_starting", worker=b.name, phase=phase.value)
                    await b.worker.start()
            elif state.get("is_running"):
                log.info("worker_stopping", worker=b.name, phase=phase.value)
                await b.worker.stop()
        except Exception as e:
            log.exception("worker_toggle_failed", worker=b.name, err=str(e))

    async def _stop_one(self, b: WorkerBinding) -> None:
        await b.worker.stop()

    def get_state(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "phase": self.last_phase.value if self.last_phase else None,
            "checks": self.checks,
            "skipped_checks": self.skipped_checks,
            "workers": {b.name: b.worker.get_state() for b in self.bindings},
        }
