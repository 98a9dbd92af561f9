import pytest

from watcher.alerts.dedup import CooldownTracker
from tests.helpers.fakes import ManualClock


def test_cooling_window():
    clock = ManualClock()
    cd = CooldownTracker(300, now_fn=clock)
    assert not cd.cooling("A", "NEW")
    cd.mark("A", "NEW")
    clock.advance(299)
    assert cd.cooling("A", "NEW")
    assert not cd.cooling("A", "PUMP")
    assert not cd.cooling("B", "NEW")
    clock.advance(1)
    assert not cd.cooling("A", "NEW")


def test_prune_drops_entries_older_than_twice_the_window():
    clock = ManualClock()
    cd = CooldownTracker(300, now_fn=clock)
    cd.mark("A", "NEW")
    clock.advance(200)
    cd.mark("B", "NEW")
    clock.advance(401)
    assert cd.prune() == 1
    assert len(cd) == 1
    clock.advance(200)
    assert cd.prune() == 1
    assert len(cd) == 0


def test_negative_cooldown_rejected():
    with pytest.raises(ValueError):
        CooldownTracker(-1)
