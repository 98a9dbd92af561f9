from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Mapping, Optional

@dataclass(frozen=True, slots=True)
class AlertRecord:
    last_value: float        # metric value at the last *reported* alert (or bootstrap baseline)
    repeat_count: int = 1    # how many steps have been recorded for this symbol


class AlertState:
    """
    Per-worker map: symbol -> AlertRecord.

    Records are immutable; a cycle computes all of its updates first and then
    applies them with a single apply() call, so no reader ever observes a
    half-applied cycle. Owned by exactly one worker; no locking.
    """
    __slots__ = ("_records",)

    def __init__(self, records: Optional[Mapping[str, AlertRecord]] = None):
        self._records: dict[str, AlertRecord] = dict(records or {})

    def get(self, symbol: str) -> Optional[AlertRecord]:
        return self._records.get(symbol)

    def last_value(self, symbol: str) -> Optional[float]:
        rec = self._records.get(symbol)
        return rec.last_value if rec is not None else None

    def apply(self, updates: Mapping[str, AlertRecord]) -> None:
        if updates:
            self._records.update(updates)

    def reset(self) -> None:
        self._records = {}

    def snapshot(self) -> dict[str, AlertRecord]:
        return dict(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    @staticmethod
    def advance(prev: Optional[AlertRecord], value: float) -> AlertRecord:
        """Next record after alerting (or baselining) `value` on top of `prev`."""
        if prev is None:
            return AlertRecord(last_value=float(value), repeat_count=1)
        return AlertRecord(last_value=float(value), repeat_count=prev.repeat_count + 1)
