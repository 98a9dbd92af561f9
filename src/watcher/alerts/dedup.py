from __future__ import annotations

from typing import Callable, Hashable, Optional

from watcher.utils.time import utc_now_s


class CooldownTracker:
    """
    (symbol, trigger) -> last alert timestamp.

    A key is cooling down while now - last < cooldown_s. Entries older than
    2 x cooldown_s are dropped by prune(), which callers run once per cycle.
    """
    def __init__(self, cooldown_s: float, now_fn: Callable[[], float] = utc_now_s):
        if cooldown_s < 0:
            raise ValueError("cooldown_s must be >= 0")
        self.cooldown_s = float(cooldown_s)
        self._now = now_fn
        self._store: dict[Hashable, float] = {}  # key -> last alert ts

    @staticmethod
    def key(symbol: str, trigger: str) -> tuple[str, str]:
        return (symbol, trigger)

    def cooling(self, symbol: str, trigger: str, now: Optional[float] = None) -> bool:
        last = self._store.get(self.key(symbol, trigger))
        if last is None:
            return False
        now = self._now() if now is None else now
        return (now - last) < self.cooldown_s

    def mark(self, symbol: str, trigger: str, now: Optional[float] = None) -> None:
        self._store[self.key(symbol, trigger)] = self._now() if now is None else now

    def prune(self, now: Optional[float] = None) -> int:
        now = self._now() if now is None else now
        horizon = self.cooldown_s * 2
        stale = [k for k, ts in self._store.items() if now - ts > horizon]
        for k in stale:
            del self._store[k]
        return len(stale)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
