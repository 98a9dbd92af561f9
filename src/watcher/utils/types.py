from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional

# ---- snapshot rows (output of ingest.parser) ----

@dataclass(frozen=True, slots=True)
class PremarketRow:
    symbol: str                      # "NASDAQ:XXXX"
    premarket_change: float          # %
    premarket_volume: float
    premarket_close: float           # price
    float_shares: Optional[float]    # None when the provider has no float


@dataclass(frozen=True, slots=True)
class MarketRow:
    """
    Regular-session snapshot. Optional fields stay None when the provider
    returns null; scoring treats a None it needs as "no score".
    """
    symbol: str
    close: Optional[float]
    change_from_open: Optional[float]   # %
    rvol_5m: Optional[float]            # 5m intraday relative volume
    value_traded: Optional[float]       # $ volume


@dataclass(frozen=True, slots=True)
class SetupRow:
    symbol: str
    premarket_change: float          # gap %
    premarket_volume: float


# ---- alerting domain ----

TriggerType = Literal["NEW", "PUMP", "DUMP"]
Strategy = Literal["FADE", "BOUNCE"]


@dataclass(slots=True)
class NotifyResult:
    success: bool
    message_id: Optional[int] = None
    message: Optional[dict[str, Any]] = None
    error: Optional[str] = None


def ticker(symbol: str) -> str:
    """'NASDAQ:AAPL' -> 'AAPL'."""
    _, _, tail = symbol.partition(":")
    return tail or symbol
