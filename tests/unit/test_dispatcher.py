import pytest

from watcher.alerts.dispatcher import CooldownAlertDispatcher, DispatcherConfig
from watcher.alerts.scoring import ScoredCandidate
from tests.helpers.fakes import ManualClock, mk


def cand(symbol, **kw):
    return ScoredCandidate(row=mk(symbol, **kw), score=1.0)


class Sink:
    def __init__(self, ok=True):
        self.ok = ok
        self.got = []

    async def __call__(self, trig):
        self.got.append((trig.kind, trig.symbol))
        return self.ok


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def disp(clock):
    return CooldownAlertDispatcher(DispatcherConfig(), now_fn=clock)


@pytest.mark.asyncio
async def test_new_entrant_then_quiet(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A")], [], sink)
    clock.advance(10)
    await disp.dispatch([cand("A")], [], sink)
    assert sink.got == [("NEW", "A")]


@pytest.mark.asyncio
async def test_stale_symbol_is_new_again(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A")], [], sink)
    clock.advance(1801)
    await disp.dispatch([cand("A")], [], sink)
    assert sink.got == [("NEW", "A"), ("NEW", "A")]


@pytest.mark.asyncio
async def test_pump_cooldown_suppresses_within_window(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A", rvol=6)], [], sink)
    clock.advance(10)
    await disp.dispatch([cand("A", rvol=12)], [], sink)
    clock.advance(60)
    await disp.dispatch([cand("A", rvol=18)], [], sink)
    assert sink.got.count(("PUMP", "A")) == 1


@pytest.mark.asyncio
async def test_pump_repeats_beyond_window(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A", rvol=6)], [], sink)
    clock.advance(10)
    await disp.dispatch([cand("A", rvol=12)], [], sink)
    clock.advance(301)
    await disp.dispatch([cand("A", rvol=18)], [], sink)
    assert sink.got.count(("PUMP", "A")) == 2


@pytest.mark.asyncio
async def test_dump_is_never_cooled_down(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A", close=10.0)], [], sink)
    for px in (9.7, 9.4, 9.1):
        clock.advance(10)
        await disp.dispatch([cand("A", close=px)], [], sink)
    assert sink.got.count(("DUMP", "A")) == 3
    assert all(k[1] != "DUMP" for k in disp.cooldowns._store)


@pytest.mark.asyncio
async def test_one_candidate_can_fire_several_triggers(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A", close=10.0, rvol=6)], [], sink)
    clock.advance(10)
    delivered = await disp.dispatch([cand("A", close=9.5, rvol=20)], [], sink)
    assert [t.kind for t in delivered] == ["PUMP", "DUMP"]
    assert delivered[1].delta == pytest.approx(-5.0)


@pytest.mark.asyncio
async def test_failed_send_does_not_start_cooldown(disp, clock):
    sink = Sink(ok=False)
    delivered = await disp.dispatch([cand("A")], [], sink)
    assert delivered == []
    assert len(disp.cooldowns) == 0


@pytest.mark.asyncio
async def test_snapshot_is_union_and_keeps_first_seen(disp, clock):
    sink = Sink()
    t0 = clock()
    await disp.dispatch([cand("A")], [cand("B", chg=-5)], sink)
    assert set(disp.prev) == {"A", "B"}
    clock.advance(10)
    await disp.dispatch([cand("A")], [], sink)
    assert set(disp.prev) == {"A"}
    assert disp.prev.get("A").first_seen == t0
    assert disp.prev.get("A").last_seen == t0 + 10


@pytest.mark.asyncio
async def test_stale_cooldowns_pruned_each_cycle(disp, clock):
    sink = Sink()
    await disp.dispatch([cand("A")], [], sink)
    assert len(disp.cooldowns) == 1
    clock.advance(601)
    await disp.dispatch([], [], sink)
    assert len(disp.cooldowns) == 0


@pytest.mark.asyncio
async def test_trend_markers(disp, clock):
    sink = Sink()
    assert disp.trend("A", 5.0, clock()) == "unseen"
    await disp.dispatch([cand("A", chg=5.0)], [], sink)
    assert disp.trend("A", 5.0, clock() + 60) == "new"
    later = clock() + 200
    assert disp.trend("A", 5.5, later) == "up"
    assert disp.trend("A", 4.5, later) == "down"
    assert disp.trend("A", 5.2, later) == "flat"
