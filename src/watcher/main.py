# src/watcher/main.py
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Optional

import structlog

from watcher.alerts.dispatcher import DispatcherConfig
from watcher.alerts.notifiers import ConsoleNotifier, Notifier
from watcher.alerts.stepper import StepAlertEngine, StepGates
from watcher.config import Settings, settings_from_env
from watcher.errors import ConfigError
from watcher.ingest.tradingview import TradingViewConfig, TradingViewSource
from watcher.notify.telegram import TelegramConfig, TelegramNotifier
from watcher.orchestrator import Orchestrator, WorkerBinding, in_phase
from watcher.utils.market_calendar import Phase, TradingWindows, catalyst_mode
from watcher.workers.catalyst import CatalystWorker
from watcher.workers.market import MarketVelocityWorker
from watcher.workers.premarket import PremarketGrowthWorker

log = structlog.get_logger("main")


def configure_logging(level: str = "INFO") -> None:
    """structlog to stdout: ISO timestamp, level, key=value console rendering."""
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


@dataclass
class App:
    settings: Settings
    source: TradingViewSource
    notifier: Notifier
    orchestrator: Orchestrator

    async def close(self) -> None:
        await self.orchestrator.stop()
        await self.source.close()
        if isinstance(self.notifier, TelegramNotifier):
            await self.notifier.close()


def build_notifier(s: Settings) -> Notifier:
    if s.notifier == "telegram":
        if not s.bot_token or not s.chat_id:
            raise ConfigError("BOT_TOKEN and CHAT_ID are required when NOTIFIER=telegram")
        log.info("telegram_enabled", chat_id=s.chat_id, thread_id=s.thread_id)
        return TelegramNotifier(TelegramConfig(bot_token=s.bot_token, chat_id=s.chat_id, thread_id=s.thread_id))
    log.info("telegram_disabled_console_only")
    return ConsoleNotifier()


def build_app(s: Settings, notifier: Optional[Notifier] = None, source: Optional[TradingViewSource] = None) -> App:
    windows = TradingWindows(exchange=s.exchange, tz_name=s.timezone)
    notifier = notifier or build_notifier(s)
    source = source or TradingViewSource(TradingViewConfig(
        timeout_s=s.fetch_timeout_s,
        cookie=s.tv_cookie,
        premarket_threshold=s.premarket_threshold,
    ))

    premarket = PremarketGrowthWorker(
        source, notifier,
        engine=StepAlertEngine(
            step=s.premarket_alert_step,
            gates=StepGates(min_change=s.premarket_threshold),
            send_on_startup=s.send_on_startup,
        ),
        interval_s=s.scan_interval_s,
    )
    market = MarketVelocityWorker(
        source, notifier,
        dispatcher_cfg=DispatcherConfig(
            cooldown_s=s.market_alert_cooldown_s,
            rvol_pump_delta=s.market_rvol_pump_delta,
            dump_threshold_pct=s.market_dump_threshold,
        ),
        top_n=s.market_top_n,
        interval_s=s.market_scan_interval_s,
        dashboard_interval_s=s.market_dashboard_interval_s,
        tz_name=s.timezone,
    )
    catalyst = CatalystWorker(
        source, notifier,
        watchlist_interval_s=s.catalyst_watchlist_interval_s,
        active_interval_s=s.catalyst_active_interval_s,
    )

    bindings = [
        WorkerBinding("premarket", premarket, in_phase(Phase.PREMARKET)),
        WorkerBinding("market", market, in_phase(Phase.MARKET)),
        WorkerBinding(
            "catalyst", catalyst,
            should_run=lambda now, _phase: catalyst_mode(now, windows) is not None,
            mode_for=lambda now: catalyst_mode(now, windows),
        ),
    ]
    orch = Orchestrator(bindings, interval_s=s.gatekeeper_interval_s, windows=windows)
    return App(settings=s, source=source, notifier=notifier, orchestrator=orch)


async def main() -> int:
    try:
        settings = settings_from_env()
    except ConfigError as e:
        configure_logging()
        log.error("config_invalid", err=str(e))
        return 2
    configure_logging(settings.log_level)

    app = build_app(settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt instead
            pass

    log.info("watcher_starting", notifier=settings.notifier, tz=settings.timezone)
    try:
        await app.orchestrator.start()
        await stop.wait()
        log.info("shutdown_requested")
    finally:
        await app.close()
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
