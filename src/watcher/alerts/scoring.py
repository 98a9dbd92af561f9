# src/watcher/alerts/scoring.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from watcher.utils.types import MarketRow

# SVS (shadow velocity score)  = change_from_open * rvol_5m * log10(value_traded)
# HSS (heavy short score)      = |change_from_open| * log10(value_traded)^2


@dataclass(frozen=True, slots=True)
class UpGates:
    min_rvol: float = 5.0
    min_change: float = 2.0
    min_value_traded: float = 10_000_000
    min_price: float = 2.0


@dataclass(frozen=True, slots=True)
class DownGates:
    max_change: float = -2.0
    min_value_traded: float = 50_000_000


UP_GATES = UpGates()
DOWN_GATES = DownGates()


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    row: MarketRow
    score: float

    @property
    def symbol(self) -> str:
        return self.row.symbol


def score_up(row: MarketRow, gates: UpGates = UP_GATES) -> Optional[float]:
    """Long momentum score, or None when a field is missing or a gate fails."""
    rvol, chg, val, px = row.rvol_5m, row.change_from_open, row.value_traded, row.close
    if rvol is None or chg is None or val is None or px is None:
        return None
    if rvol < gates.min_rvol:
        return None
    if chg < gates.min_change:
        return None
    if val < gates.min_value_traded:
        return None
    if px < gates.min_price:
        return None
    return chg * rvol * math.log10(val)


def score_down(row: MarketRow, gates: DownGates = DOWN_GATES) -> Optional[float]:
    """Institutional distribution score, or None when excluded."""
    chg, val = row.change_from_open, row.value_traded
    if chg is None or val is None:
        return None
    if chg > gates.max_change:
        return None
    if val < gates.min_value_traded:
        return None
    return abs(chg) * math.log10(val) ** 2


def rank(
    rows: Sequence[MarketRow],
    score_fn: Callable[[MarketRow], Optional[float]],
    top_n: int = 5,
) -> list[ScoredCandidate]:
    """
    Score every row, drop "no score" rows, sort descending by score.
    Equal scores keep snapshot order (stable sort).
    """
    if not rows or top_n <= 0:
        return []
    raw = [score_fn(r) for r in rows]
    scores = np.array([np.nan if s is None else s for s in raw], dtype=np.float64)
    idx = np.flatnonzero(np.isfinite(scores))
    if idx.size == 0:
        return []
    order = idx[np.argsort(-scores[idx], kind="stable")][:top_n]
    return [ScoredCandidate(row=rows[i], score=float(scores[i])) for i in order]


def rank_up(rows: Sequence[MarketRow], top_n: int = 5, gates: UpGates = UP_GATES) -> list[ScoredCandidate]:
    return rank(rows, lambda r: score_up(r, gates), top_n)


def rank_down(rows: Sequence[MarketRow], top_n: int = 5, gates: DownGates = DOWN_GATES) -> list[ScoredCandidate]:
    return rank(rows, lambda r: score_down(r, gates), top_n)
