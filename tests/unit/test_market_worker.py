import pytest

from watcher.ingest.source import Query
from watcher.workers.market import MarketVelocityWorker
from tests.helpers.fakes import FakeSource, ManualClock, RecordingNotifier, mk


def make(script, dashboard_interval_s=3600):
    clock = ManualClock()
    src = FakeSource({Query.MARKET: script})
    n = RecordingNotifier()
    w = MarketVelocityWorker(src, n, interval_s=3600, dashboard_interval_s=dashboard_interval_s, now_fn=clock)
    return w, clock, n


def alerts(n, marker):
    return [t for t in n.formatted if marker in t]


@pytest.mark.asyncio
async def test_first_scan_alerts_new_and_pins_dashboard():
    w, _, n = make([[mk("NASDAQ:UPP"), mk("NYSE:DWN", chg=-5.0, value=1e8)]])
    await w.start()

    assert len(alerts(n, "NEW ALERT: UPP")) == 1
    dash = alerts(n, "SHADOW VELOCITY DASHBOARD")
    assert len(dash) == 1
    assert "UPP" in dash[0] and "DWN" in dash[0]
    assert n.pins == [w.dashboard_id]

    await w.refresh_dashboard()
    assert len(alerts(n, "SHADOW VELOCITY DASHBOARD")) == 1
    assert n.edits and n.edits[-1][0] == w.dashboard_id

    st = w.get_state()
    assert st["up_count"] == 1 and st["down_count"] == 1 and st["tracked_symbols"] == 2
    await w.stop()


@pytest.mark.asyncio
async def test_pump_cooldown_through_worker():
    w, clock, n = make([
        [mk("A", rvol=6)],
        [mk("A", rvol=12)],
        [mk("A", rvol=18)],
        [mk("A", rvol=24)],
    ])
    await w.start()
    clock.advance(10)
    await w._tick()
    clock.advance(60)
    await w._tick()
    assert len(alerts(n, "Fuel Injection")) == 1
    clock.advance(301)
    await w._tick()
    assert len(alerts(n, "Fuel Injection")) == 2
    await w.stop()


@pytest.mark.asyncio
async def test_trends_use_previous_cycle():
    w, clock, _ = make([[mk("A", chg=5.0)], [mk("A", chg=6.0)]])
    await w.start()
    assert w.trends == {"A": "unseen"}
    clock.advance(200)
    await w._tick()
    assert w.trends == {"A": "up"}
    await w.stop()


@pytest.mark.asyncio
async def test_dashboard_disabled_and_reset_on_restart():
    w, _, n = make([[mk("A")]], dashboard_interval_s=None)
    await w.start()
    assert not alerts(n, "DASHBOARD") and w.dashboard_id is None
    await w.stop()
    await w.start()
    # prev snapshot was reset, so the symbol is a new entrant again
    assert len(alerts(n, "NEW ALERT: A")) == 2
    await w.stop()
