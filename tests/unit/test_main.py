from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from tests.helpers.fakes import FakeSource, RecordingNotifier
from watcher.alerts.notifiers import ConsoleNotifier
from watcher.config import Settings
from watcher.main import build_app, build_notifier
from watcher.errors import ConfigError
from watcher.utils.market_calendar import Phase

NY = ZoneInfo("America/New_York")


def test_console_notifier_by_default():
    assert isinstance(build_notifier(Settings()), ConsoleNotifier)


def test_telegram_requires_credentials():
    with pytest.raises(ConfigError):
        build_notifier(Settings(notifier="telegram", bot_token="x"))


def test_bindings_follow_trading_windows():
    s = Settings(market_top_n=3, scan_interval_s=5)
    app = build_app(s, notifier=RecordingNotifier(), source=FakeSource())
    by_name = {b.name: b for b in app.orchestrator.bindings}
    assert list(by_name) == ["premarket", "market", "catalyst"]
    assert by_name["market"].worker.top_n == 3
    assert by_name["premarket"].worker.interval_s == 5

    tue_pre = datetime(2024, 6, 4, 8, 0, tzinfo=NY)
    assert by_name["premarket"].should_run(tue_pre, Phase.PREMARKET)
    assert not by_name["market"].should_run(tue_pre, Phase.PREMARKET)
    assert by_name["catalyst"].mode_for(tue_pre) == "watchlist"
    assert by_name["catalyst"].mode_for(datetime(2024, 6, 4, 9, 45, tzinfo=NY)) == "active"

    christmas = datetime(2024, 12, 25, 9, 45, tzinfo=NY)
    assert not by_name["catalyst"].should_run(christmas, Phase.CLOSED)


@pytest.mark.asyncio
async def test_close_stops_everything():
    src = FakeSource()
    app = build_app(Settings(), notifier=RecordingNotifier(), source=src)
    await app.close()
    assert src.closed and not app.orchestrator.running
