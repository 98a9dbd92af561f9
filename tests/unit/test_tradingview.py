import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from watcher.errors import TransportError
from watcher.ingest.parser import COLUMNS
from watcher.ingest.source import Query
from watcher.ingest.tradingview import TradingViewConfig, TradingViewSource, build_body


class FakeScanner:
    def __init__(self):
        self.bodies = []
        self.replies = []

    async def handle(self, request):
        self.bodies.append(await request.json())
        status, body = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(body, str):
            return web.Response(text=body, status=status)
        return web.json_response(body, status=status)


@pytest_asyncio.fixture
async def scanner():
    fake = FakeScanner()
    app = web.Application()
    app.router.add_post("/america/scan", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("/america/scan"))
    yield fake
    await server.close()


def source(url, attempts=3):
    return TradingViewSource(TradingViewConfig(url=url, attempts=attempts, initial_backoff_s=0.01, max_backoff_s=0.02))


def test_body_requests_parser_columns():
    cfg = TradingViewConfig(premarket_threshold=12)
    for q in Query:
        assert build_body(q, cfg)["columns"] == list(COLUMNS[q])
    pre = build_body(Query.PREMARKET, cfg)
    assert {"left": "premarket_change", "operation": "greater", "right": 12} in pre["filter"]


@pytest.mark.asyncio
async def test_fetch_parses_and_drops_bad_rows(scanner):
    scanner.replies = [(200, {"totalCount": 2, "data": [
        {"s": "NASDAQ:A", "d": [12.0, 100_000, 3.0, 1_000_000]},
        {"s": "NASDAQ:B", "d": [None, 100_000, 3.0, None]},
    ]})]
    src = source(scanner.url)
    rows = await src.fetch(Query.PREMARKET)
    await src.close()
    assert [r.symbol for r in rows] == ["NASDAQ:A"]


@pytest.mark.asyncio
async def test_transient_failure_is_retried(scanner):
    scanner.replies = [(503, "busy"), (200, {"data": [{"s": "A", "d": [5.0, 200_000]}]})]
    src = source(scanner.url)
    rows = await src.fetch(Query.SETUP)
    await src.close()
    assert len(rows) == 1 and len(scanner.bodies) == 2


@pytest.mark.asyncio
async def test_gives_up_with_transport_error(scanner):
    scanner.replies = [(403, "forbidden")]
    src = source(scanner.url, attempts=2)
    with pytest.raises(TransportError) as exc:
        await src.fetch(Query.MARKET)
    await src.close()
    assert exc.value.status == 403
    assert len(scanner.bodies) == 2


@pytest.mark.asyncio
async def test_missing_data_key_is_empty(scanner):
    scanner.replies = [(200, {"totalCount": 0})]
    src = source(scanner.url)
    assert await src.fetch(Query.MARKET) == []
    await src.close()
