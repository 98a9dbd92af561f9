from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Optional, TypeVar

import structlog

from watcher.errors import RowValidationError
from watcher.ingest.source import Query
from watcher.utils.types import MarketRow, PremarketRow, SetupRow

log = structlog.get_logger("parser")

T = TypeVar("T")

# Scanner responses carry the symbol in row["s"] and the requested columns,
# in request order, in row["d"]. Keep the index constants in sync with these.
PREMARKET_COLUMNS = (
    "premarket_change",            # d[0]
    "premarket_volume",            # d[1]
    "premarket_close",             # d[2]
    "float_shares_outstanding",    # d[3]
)
MARKET_COLUMNS = (
    "close",                       # d[0]
    "change_from_open",            # d[1]
    "relative_volume_intraday|5",  # d[2]
    "Value.Traded",                # d[3]
)
SETUP_COLUMNS = (
    "premarket_change",            # d[0]
    "premarket_volume",            # d[1]
)

COLUMNS: dict[Query, tuple[str, ...]] = {
    Query.PREMARKET: PREMARKET_COLUMNS,
    Query.MARKET: MARKET_COLUMNS,
    Query.SETUP: SETUP_COLUMNS,
}


def _symbol(raw: Any) -> str:
    if not isinstance(raw, dict):
        raise RowValidationError(f"row is not an object: {type(raw).__name__}")
    sym = raw.get("s")
    if not isinstance(sym, str) or not sym:
        raise RowValidationError("row has no symbol")
    return sym


def _cells(raw: dict, n: int) -> list:
    d = raw.get("d")
    if not isinstance(d, list) or len(d) < n:
        raise RowValidationError(f"{raw.get('s')}: expected {n} columns, got {d!r:.80}")
    return d


def _num(v: Any, name: str, *, required: bool) -> Optional[float]:
    """
    None stays None for optional fields. Booleans, strings and non-finite
    numbers are rejected.
    """
    if v is None:
        if required:
            raise RowValidationError(f"missing {name}")
        return None
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise RowValidationError(f"{name} is not a number: {v!r}")
    f = float(v)
    if not math.isfinite(f):
        raise RowValidationError(f"{name} is not finite: {v!r}")
    return f


def map_premarket_row(raw: Any) -> PremarketRow:
    sym = _symbol(raw)
    d = _cells(raw, len(PREMARKET_COLUMNS))
    try:
        return PremarketRow(
            symbol=sym,
            premarket_change=_num(d[0], "premarket_change", required=True),
            premarket_volume=_num(d[1], "premarket_volume", required=True),
            premarket_close=_num(d[2], "premarket_close", required=True),
            float_shares=_num(d[3], "float_shares", required=False),
        )
    except RowValidationError as e:
        raise RowValidationError(f"{sym}: {e}") from None


def map_market_row(raw: Any) -> MarketRow:
    sym = _symbol(raw)
    d = _cells(raw, len(MARKET_COLUMNS))
    try:
        return MarketRow(
            symbol=sym,
            close=_num(d[0], "close", required=False),
            change_from_open=_num(d[1], "change_from_open", required=False),
            rvol_5m=_num(d[2], "rvol_5m", required=False),
            value_traded=_num(d[3], "value_traded", required=False),
        )
    except RowValidationError as e:
        raise RowValidationError(f"{sym}: {e}") from None


def map_setup_row(raw: Any) -> SetupRow:
    sym = _symbol(raw)
    d = _cells(raw, len(SETUP_COLUMNS))
    try:
        return SetupRow(
            symbol=sym,
            premarket_change=_num(d[0], "premarket_change", required=True),
            premarket_volume=_num(d[1], "premarket_volume", required=True),
        )
    except RowValidationError as e:
        raise RowValidationError(f"{sym}: {e}") from None


def _map_all(raws: Iterable[Any], fn: Callable[[Any], T]) -> list[T]:
    out: list[T] = []
    dropped = 0
    for raw in raws:
        try:
            out.append(fn(raw))
        except RowValidationError as e:
            dropped += 1
            log.debug("row_dropped", err=str(e))
    if dropped:
        log.info("rows_dropped", dropped=dropped, kept=len(out))
    return out


def parse_premarket(raws: Iterable[Any]) -> list[PremarketRow]:
    return _map_all(raws, map_premarket_row)


def parse_market(raws: Iterable[Any]) -> list[MarketRow]:
    return _map_all(raws, map_market_row)


def parse_setup(raws: Iterable[Any]) -> list[SetupRow]:
    return _map_all(raws, map_setup_row)


PARSERS: dict[Query, Callable[[Iterable[Any]], list]] = {
    Query.PREMARKET: parse_premarket,
    Query.MARKET: parse_market,
    Query.SETUP: parse_setup,
}
