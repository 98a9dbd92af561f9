from watcher.alerts.dispatcher import PrevEntry, Trigger
from watcher.alerts.formatting import (
    format_catalyst_alert, format_dashboard, format_num, format_status, format_step_alert, format_trigger,
)
from watcher.alerts.scoring import ScoredCandidate
from watcher.alerts.state import AlertRecord
from watcher.alerts.stepper import StepDecision
from watcher.alerts.watchlist import CatalystTrigger, WatchEntry
from tests.helpers.fakes import mk, pm


def test_format_num():
    assert format_num(2_500_000) == "2.5M"
    assert format_num(1_000_000) == "1M"
    assert format_num(12_000) == "12K"
    assert format_num(3_200_000_000) == "3.2B"
    assert format_num(999) == "999"
    assert format_num(None) == "-"
    assert format_num(float("nan")) == "-"


def test_first_sighting_vs_step():
    row = pm("NASDAQ:ABCD", 11.0)
    first = format_step_alert(StepDecision(row=row, value=11.0, prev=None))
    assert first.startswith("🚀 NASDAQ:ABCD")
    assert "STEP" not in first and "was" not in first

    step = format_step_alert(StepDecision(row=row, value=11.0, prev=AlertRecord(10.0, 1)))
    assert step.startswith("[STEP #2] 📈")
    assert "11.00% (was 10.00%)" in step


def test_status():
    assert format_status("Scanner", True) == "🟢 Scanner started"
    assert format_status("Scanner", False, "failed to start") == "🔴 Scanner stopped (failed to start)"


def test_triggers():
    c = ScoredCandidate(mk("NASDAQ:ABCD", close=9.5, rvol=20), 1.0)
    prev = PrevEntry(price=10.0, change=5.0, rvol=6.0, first_seen=0, last_seen=0)
    assert "NEW ALERT: ABCD" in format_trigger(Trigger("NEW", c))
    assert "RVOL: 6 → 20" in format_trigger(Trigger("PUMP", c, prev, 14.0))
    assert "fell 5.0%" in format_trigger(Trigger("DUMP", c, prev, -5.0))


def test_dashboard_rows_and_empty_lists():
    empty = format_dashboard([], [], {}, 1_700_000_000)
    assert empty.count("(no stocks matching criteria)") == 2

    up = [ScoredCandidate(mk("NASDAQ:ABCD", close=12.34, chg=7.0, rvol=9.0), 1234.0)]
    down = [ScoredCandidate(mk("NYSE:BIG", close=250.0, chg=-4.0, value=8e7), 99.0)]
    text = format_dashboard(up, down, {"NASDAQ:ABCD": "up"}, 1_700_000_000)
    assert "🟢ABCD" in text
    assert "$12.3" in text and "$250" in text
    assert "$80M" in text


def test_catalyst_alert():
    e = WatchEntry("NASDAQ:GAP", gap=6.0, pre_volume=1_500_000, score=1.0)
    text = format_catalyst_alert(CatalystTrigger("FADE", e, -1.2))
    assert "FADE (Short)" in text
    assert "$GAP" in text and "+6.0%" in text and "1.5M" in text and "(-1.2%)" in text


def test_dashboard_ticker_cut_before_escaping():
    up = [ScoredCandidate(mk("NYSE:AB&CDEFG"), 10.0)]
    down = [ScoredCandidate(mk("NYSE:XY&Z", chg=-4.0, value=8e7), 5.0)]
    text = format_dashboard(up, down, {}, 1_700_000_000)
    assert "AB&amp;CDE" in text
    assert "XY&amp;Z" in text
    assert "&am " not in text and "&a " not in text
