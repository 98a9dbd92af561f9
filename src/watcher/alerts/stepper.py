# src/watcher/alerts/stepper.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import structlog

from watcher.alerts.state import AlertRecord, AlertState
from watcher.utils.types import PremarketRow

log = structlog.get_logger("stepper")

LOW_FLOAT_CEILING = 15_000_000


@dataclass(slots=True)
class StepGates:
    """
    Static pass/fail filters applied before any step logic.
      change  >  min_change
      volume  >  min_volume
      price   >= min_price
      float   <= max_float   (unknown float passes)
    """
    min_change: float = 10.0
    min_volume: float = 50_000
    min_price: float = 0.8
    max_float: Optional[float] = LOW_FLOAT_CEILING

    def rejects(self, row: PremarketRow) -> Optional[str]:
        """Reason string if the row fails a gate, else None."""
        if not row.premarket_change > self.min_change:
            return "change"
        if not row.premarket_volume > self.min_volume:
            return "volume"
        if not row.premarket_close >= self.min_price:
            return "price"
        if self.max_float is not None and row.float_shares is not None and row.float_shares > self.max_float:
            return "float"
        return None


@dataclass(frozen=True, slots=True)
class StepDecision:
    row: PremarketRow
    value: float
    prev: Optional[AlertRecord]

    @property
    def symbol(self) -> str:
        return self.row.symbol

    @property
    def is_new(self) -> bool:
        return self.prev is None

    @property
    def step_no(self) -> int:
        """Step number this alert would carry if delivered."""
        return 1 if self.prev is None else self.prev.repeat_count + 1

    def record(self) -> AlertRecord:
        return AlertState.advance(self.prev, self.value)


@dataclass(slots=True)
class StepCycleResult:
    eligible: list[StepDecision] = field(default_factory=list)
    suppressed: bool = False
    rejected: int = 0

    @property
    def to_send(self) -> list[StepDecision]:
        return [] if self.suppressed else self.eligible

    def baseline(self) -> dict[str, AlertRecord]:
        """Records to pre-seed when bootstrap notifications are suppressed."""
        if not self.suppressed:
            return {}
        return {d.symbol: d.record() for d in self.eligible}


class StepAlertEngine:
    """
    Discretizing rate limiter over a per-symbol metric.

    A symbol is eligible when it has never been reported, or when its value
    reached last_reported + step. Only forward progress against the last
    *reported* value counts, so a dip and a re-cross of an already-reported
    level stays quiet.

    On the first scan after a worker start, eligible symbols are baselined but
    not notified unless send_on_startup is set. Symbols visible on that scan
    that were not eligible are not baselined.
    """
    def __init__(
        self,
        *,
        step: float = 1.0,
        gates: Optional[StepGates] = None,
        send_on_startup: bool = False,
        value_fn: Callable[[PremarketRow], float] = lambda r: r.premarket_change,
    ):
        if step <= 0:
            raise ValueError("step must be > 0")
        self.step = float(step)
        self.gates = gates or StepGates()
        self.send_on_startup = bool(send_on_startup)
        self._value_fn = value_fn

    def is_eligible(self, value: float, prev: Optional[AlertRecord]) -> bool:
        return prev is None or value >= prev.last_value + self.step

    def evaluate(self, rows: Iterable[PremarketRow], state: AlertState, *, first_scan: bool) -> StepCycleResult:
        """Pure decision pass: reads `state`, never writes it."""
        out = StepCycleResult()
        for row in rows:
            reason = self.gates.rejects(row)
            if reason is not None:
                out.rejected += 1
                log.debug("gate_rejected", symbol=row.symbol, gate=reason)
                continue
            value = float(self._value_fn(row))
            prev = state.get(row.symbol)
            if self.is_eligible(value, prev):
                out.eligible.append(StepDecision(row=row, value=value, prev=prev))

        out.suppressed = bool(out.eligible) and first_scan and not self.send_on_startup
        if out.suppressed:
            log.info("bootstrap_suppressed", count=len(out.eligible))
        return out
