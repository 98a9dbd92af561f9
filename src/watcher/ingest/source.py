from __future__ import annotations

from enum import Enum
from typing import Protocol, Sequence, Union

from watcher.utils.types import MarketRow, PremarketRow, SetupRow

Row = Union[PremarketRow, MarketRow, SetupRow]


class Query(str, Enum):
    PREMARKET = "premarket"   # premarket gainers -> PremarketRow
    MARKET = "market"         # regular-session movers -> MarketRow
    SETUP = "setup"           # premarket gappers, both directions -> SetupRow


class DataSource(Protocol):
    """
    Snapshot provider. fetch() returns already validated rows for the query
    and raises (TransportError or anything else) when the cycle cannot be served.
    """
    async def fetch(self, query: Query) -> Sequence[Row]: ...
