import asyncio
from datetime import datetime

import pytest

from watcher.orchestrator import Orchestrator, WorkerBinding, in_phase
from watcher.utils.market_calendar import Phase, catalyst_mode
from watcher.utils.time import NY
from tests.helpers.fakes import FakeWorker

# Wednesday
PREMARKET = datetime(2024, 3, 13, 8, 0, tzinfo=NY)
MARKET = datetime(2024, 3, 13, 10, 0, tzinfo=NY)
CLOSED = datetime(2024, 3, 13, 17, 0, tzinfo=NY)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def two_workers(events, **kw):
    a = FakeWorker("A", events, **kw.get("a", {}))
    b = FakeWorker("B", events, **kw.get("b", {}))
    bindings = [
        WorkerBinding("A", a, in_phase(Phase.PREMARKET)),
        WorkerBinding("B", b, in_phase(Phase.MARKET)),
    ]
    return a, b, bindings


@pytest.mark.asyncio
async def test_phase_sequence_drives_workers():
    events = []
    a, b, bindings = two_workers(events)
    clock = Clock(PREMARKET)
    orch = Orchestrator(bindings, interval_s=3600, clock=clock)

    await orch.start()
    assert a.is_running and not b.is_running

    clock.now = MARKET
    await orch.check()
    assert not a.is_running and b.is_running

    clock.now = CLOSED
    await orch.check()
    assert not a.is_running and not b.is_running
    assert events == ["A:start", "A:stop", "B:start", "B:stop"]
    assert orch.get_state()["phase"] == "closed"
    await orch.stop()


@pytest.mark.asyncio
async def test_overlapping_checks_do_not_double_start():
    events = []
    a, _, bindings = two_workers(events, a={"start_delay": 0.02})
    orch = Orchestrator(bindings, interval_s=3600, clock=Clock(PREMARKET))
    orch.running = True
    await asyncio.gather(orch.check(), orch.check(), orch.check())
    assert a.starts == 1
    assert orch.skipped_checks == 2
    await orch.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent():
    events = []
    a, _, bindings = two_workers(events)
    orch = Orchestrator(bindings, interval_s=3600, clock=Clock(PREMARKET))
    await orch.start()
    await orch.start()
    assert events == ["A:start"]
    assert orch.checks == 1
    await orch.stop()


@pytest.mark.asyncio
async def test_start_failure_is_isolated():
    events = []
    a = FakeWorker("A", events, fail_start=True)
    b = FakeWorker("B", events)
    bindings = [
        WorkerBinding("A", a, in_phase(Phase.MARKET)),
        WorkerBinding("B", b, in_phase(Phase.MARKET)),
    ]
    orch = Orchestrator(bindings, interval_s=3600, clock=Clock(MARKET))
    await orch.start()
    assert not a.is_running and b.is_running
    assert orch.running
    await orch.stop()


@pytest.mark.asyncio
async def test_stop_failure_is_isolated():
    events = []
    a, b, bindings = two_workers(events)
    orch = Orchestrator(bindings, interval_s=3600, clock=Clock(MARKET))
    await orch.start()
    assert b.is_running
    a.fail_stop = True
    await orch.stop()
    assert not b.is_running
    assert events[-1] == "B:stop"


@pytest.mark.asyncio
async def test_no_checks_after_stop():
    events = []
    a, _, bindings = two_workers(events)
    clock = Clock(CLOSED)
    orch = Orchestrator(bindings, interval_s=3600, clock=clock)
    await orch.start()
    await orch.stop()
    clock.now = PREMARKET
    await orch.check()
    assert not a.is_running


@pytest.mark.asyncio
async def test_mode_set_before_start_and_switched_while_running():
    events = []
    w = FakeWorker("C", events)
    binding = WorkerBinding(
        "C", w,
        should_run=lambda now, _phase: catalyst_mode(now) is not None,
        mode_for=catalyst_mode,
    )
    clock = Clock(datetime(2024, 3, 13, 8, 30, tzinfo=NY))
    orch = Orchestrator([binding], interval_s=3600, clock=clock)
    await orch.start()
    assert events == ["C:mode:watchlist", "C:start"]

    clock.now = datetime(2024, 3, 13, 9, 45, tzinfo=NY)
    await orch.check()
    assert events[-1] == "C:mode:active"
    assert w.starts == 1

    clock.now = datetime(2024, 3, 13, 14, 0, tzinfo=NY)
    await orch.check()
    assert events[-1] == "C:stop"
    await orch.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_check_in_flight():
    events = []
    a, _, bindings = two_workers(events, a={"start_delay": 0.05})
    clock = Clock(CLOSED)
    orch = Orchestrator(bindings, interval_s=0.01, clock=clock)
    await orch.start()
    clock.now = PREMARKET
    await asyncio.sleep(0.025)
    assert a.is_starting
    await orch.stop()
    assert not a.is_running
    assert events == ["A:start", "A:stop"]
