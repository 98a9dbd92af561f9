from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import aiohttp
import structlog

from watcher.errors import TransportError
from watcher.ingest.parser import COLUMNS, PARSERS
from watcher.ingest.source import Query, Row
from watcher.utils.backoff import jitter, retry_delays
from watcher.utils.time import monotonic_s

log = structlog.get_logger("tradingview")

TV_URL = "https://scanner.tradingview.com/america/scan"

BROWSER_HEADERS = {
    "accept": "text/plain, */*; q=0.01",
    "accept-language": "en-US,en;q=0.9",
    "origin": "https://www.tradingview.com",
    "referer": "https://www.tradingview.com/",
}

# common + preferred stock and depositary receipts
_INSTRUMENT_FILTER = {
    "operator": "and",
    "operands": [{
        "operation": {
            "operator": "or",
            "operands": [
                {"operation": {"operator": "and", "operands": [
                    {"expression": {"left": "type", "operation": "equal", "right": "stock"}},
                    {"expression": {"left": "typespecs", "operation": "has", "right": ["common"]}},
                ]}},
                {"operation": {"operator": "and", "operands": [
                    {"expression": {"left": "type", "operation": "equal", "right": "stock"}},
                    {"expression": {"left": "typespecs", "operation": "has", "right": ["preferred"]}},
                ]}},
                {"operation": {"operator": "and", "operands": [
                    {"expression": {"left": "type", "operation": "equal", "right": "dr"}},
                ]}},
            ],
        },
    }],
}


@dataclass(slots=True)
class TradingViewConfig:
    url: str = TV_URL
    timeout_s: float = 30.0
    attempts: int = 3
    initial_backoff_s: float = 1.0
    max_backoff_s: float = 8.0
    cookie: Optional[str] = None
    premarket_threshold: float = 10.0   # server-side prefilter only
    range_size: int = 100


def build_body(query: Query, cfg: TradingViewConfig) -> dict[str, Any]:
    """Scanner request for `query`. Server-side filters only narrow the payload."""
    if query is Query.PREMARKET:
        filt = [
            {"left": "premarket_volume", "operation": "greater", "right": 50_000},
            {"left": "premarket_change", "operation": "greater", "right": cfg.premarket_threshold},
            {"left": "premarket_close", "operation": "egreater", "right": 0.8},
        ]
        sort = {"sortBy": "premarket_change", "sortOrder": "desc"}
    elif query is Query.MARKET:
        filt = [
            {"left": "close", "operation": "egreater", "right": 1},
            {"left": "Value.Traded", "operation": "egreater", "right": 10_000_000},
            {"left": "is_primary", "operation": "equal", "right": True},
        ]
        sort = {"sortBy": "Value.Traded", "sortOrder": "desc"}
    else:
        filt = [
            {"left": "premarket_volume", "operation": "greater", "right": 100_000},
        ]
        sort = {"sortBy": "premarket_volume", "sortOrder": "desc"}

    return {
        "columns": list(COLUMNS[query]),
        "filter": filt,
        "filter2": _INSTRUMENT_FILTER,
        "ignore_unknown_fields": False,
        "options": {"lang": "en"},
        "range": [0, cfg.range_size],
        "sort": sort,
        "symbols": {},
        "markets": ["america"],
    }


class TradingViewSource:
    """
    DataSource backed by the public TradingView scanner endpoint.

    Transport failures are retried `attempts` times with jittered exponential
    backoff; the last failure is raised as TransportError.
    """
    def __init__(self, cfg: Optional[TradingViewConfig] = None):
        self.cfg = cfg or TradingViewConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if self._session is None:
            headers = dict(BROWSER_HEADERS)
            if self.cfg.cookie:
                headers["cookie"] = self.cfg.cookie
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=headers)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, query: Query) -> Sequence[Row]:
        await self.start()
        raws = await self._post(build_body(query, self.cfg))
        return PARSERS[query](raws)

    async def _post(self, body: dict[str, Any]) -> list:
        assert self._session is not None
        attempts = max(1, self.cfg.attempts)
        delays = retry_delays(attempts, self.cfg.initial_backoff_s, self.cfg.max_backoff_s)
        last: Optional[TransportError] = None
        for attempt in range(1, attempts + 1):
            t0 = monotonic_s()
            try:
                async with self._session.post(self.cfg.url, json=body) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        raise TransportError(f"HTTP {resp.status}: {text[:200]}", status=resp.status)
                    data = await resp.json(content_type=None)
            except TransportError as e:
                last = e
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                last = TransportError(f"{type(e).__name__}: {e}")
            else:
                rows = data.get("data") if isinstance(data, dict) else None
                rows = rows if isinstance(rows, list) else []
                log.debug("tv_ok", rows=len(rows), total=data.get("totalCount") if isinstance(data, dict) else None,
                          ms=int((monotonic_s() - t0) * 1000))
                return rows

            log.warning("tv_fetch_failed", attempt=attempt, status=last.status, err=str(last))
            if attempt <= len(delays):
                await asyncio.sleep(jitter(delays[attempt - 1]))

        assert last is not None
        raise last
