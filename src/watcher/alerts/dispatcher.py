# src/watcher/alerts/dispatcher.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Iterator, Literal, Optional, Sequence

import structlog

from watcher.alerts.dedup import CooldownTracker
from watcher.alerts.scoring import ScoredCandidate
from watcher.utils.time import utc_now_s
from watcher.utils.types import TriggerType

log = structlog.get_logger("dispatcher")

Trend = Literal["new", "up", "down", "flat", "unseen"]


@dataclass(frozen=True, slots=True)
class PrevEntry:
    price: float
    change: float
    rvol: Optional[float]
    first_seen: float
    last_seen: float


class PrevSnapshot:
    """symbol -> PrevEntry for the previous cycle. Replaced wholesale each cycle."""
    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, PrevEntry] = {}

    def get(self, symbol: str) -> Optional[PrevEntry]:
        return self._entries.get(symbol)

    def replace(self, candidates: Iterable[ScoredCandidate], now: float) -> None:
        nxt: dict[str, PrevEntry] = {}
        for c in candidates:
            row = c.row
            existing = self._entries.get(row.symbol)
            nxt[row.symbol] = PrevEntry(
                price=float(row.close or 0.0),
                change=float(row.change_from_open or 0.0),
                rvol=row.rvol_5m,
                first_seen=existing.first_seen if existing is not None else now,
                last_seen=now,
            )
        self._entries = nxt

    def clear(self) -> None:
        self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)


@dataclass(frozen=True, slots=True)
class DispatcherConfig:
    cooldown_s: float = 300.0          # 5 min per (symbol, trigger)
    rvol_pump_delta: float = 5.0       # rvol points since last scan
    dump_threshold_pct: float = -2.0   # price change since last scan
    stale_after_s: float = 30 * 60     # absent this long -> new entrant again
    fresh_for_s: float = 120.0         # dashboard "new" marker
    trend_band_pct: float = 0.3        # dashboard up/down marker


@dataclass(frozen=True, slots=True)
class Trigger:
    kind: TriggerType
    candidate: ScoredCandidate
    prev: Optional[PrevEntry] = None
    delta: float = 0.0   # PUMP: rvol delta, DUMP: price change %

    @property
    def symbol(self) -> str:
        return self.candidate.symbol


SendFn = Callable[[Trigger], Awaitable[bool]]


class CooldownAlertDispatcher:
    """
    Classifies ranked "up" candidates against the previous cycle:

      NEW   not in PrevSnapshot, or last seen more than stale_after_s ago
      PUMP  rvol grew by >= rvol_pump_delta since last scan
      DUMP  price moved <= dump_threshold_pct since last scan

    NEW and PUMP are suppressed per (symbol, kind) for cooldown_s after a
    delivered alert. DUMP is never cooled down.
    """
    def __init__(self, cfg: Optional[DispatcherConfig] = None, now_fn: Callable[[], float] = utc_now_s):
        self.cfg = cfg or DispatcherConfig()
        self._now = now_fn
        self.prev = PrevSnapshot()
        self.cooldowns = CooldownTracker(self.cfg.cooldown_s, now_fn=now_fn)

    def reset(self) -> None:
        self.prev.clear()
        self.cooldowns.clear()

    def classify(self, up: Sequence[ScoredCandidate], now: float) -> list[Trigger]:
        out: list[Trigger] = []
        for cand in up:
            row = cand.row
            prev = self.prev.get(row.symbol)

            if prev is None or (now - prev.last_seen) > self.cfg.stale_after_s:
                out.append(Trigger("NEW", cand, prev))

            if prev is not None and prev.rvol is not None and row.rvol_5m is not None:
                grew = row.rvol_5m - prev.rvol
                if grew >= self.cfg.rvol_pump_delta:
                    out.append(Trigger("PUMP", cand, prev, grew))

            if prev is not None and prev.price > 0 and row.close is not None:
                moved = (row.close - prev.price) / prev.price * 100.0
                if moved <= self.cfg.dump_threshold_pct:
                    out.append(Trigger("DUMP", cand, prev, moved))
        return out

    def trend(self, symbol: str, change: Optional[float], now: float) -> Trend:
        prev = self.prev.get(symbol)
        if prev is None or change is None:
            return "unseen"
        if now - prev.first_seen < self.cfg.fresh_for_s:
            return "new"
        if change > prev.change + self.cfg.trend_band_pct:
            return "up"
        if change < prev.change - self.cfg.trend_band_pct:
            return "down"
        return "flat"

    async def dispatch(
        self,
        up: Sequence[ScoredCandidate],
        down: Sequence[ScoredCandidate],
        send: SendFn,
    ) -> list[Trigger]:
        """
        Run one cycle: classify, apply cooldowns, deliver, then roll the
        snapshot forward and prune stale cooldowns. Returns delivered triggers.
        """
        now = self._now()
        delivered: list[Trigger] = []
        for trig in self.classify(up, now):
            cooled = trig.kind != "DUMP"
            if cooled and self.cooldowns.cooling(trig.symbol, trig.kind, now):
                log.debug("cooldown_suppressed", symbol=trig.symbol, trigger=trig.kind)
                continue
            if not await send(trig):
                continue
            if cooled:
                self.cooldowns.mark(trig.symbol, trig.kind, now)
            delivered.append(trig)

        self.prev.replace([*up, *down], now)
        self.cooldowns.prune(now)
        return delivered
