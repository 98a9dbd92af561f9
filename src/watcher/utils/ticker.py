from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

log = structlog.get_logger("ticker")


class PeriodicTicker:
    """
    Fires `callback` every `interval_s` on the running loop until stopped.

    The ticker only schedules. It does not await the callback between fires:
    each fire runs as its own task so a slow callback cannot delay the clock.
    Callers that must not overlap guard themselves (see ScanWorker._tick).

    stop() cancels the timer only. Callback tasks already in flight are left
    to finish on their own.
    """
    def __init__(
        self,
        interval_s: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "ticker",
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.interval_s = float(interval_s)
        self._callback = callback
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self._name)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def wait_inflight(self) -> None:
        """Await callbacks fired before stop()."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_s)
                t = asyncio.create_task(self._fire(), name=f"{self._name}-fire")
                self._inflight.add(t)
                t.add_done_callback(self._inflight.discard)
        except asyncio.CancelledError:
            return

    async def _fire(self) -> None:
        try:
            await self._callback()
        except Exception as e:
            # the clock outlives callback failures
            log.exception("ticker_callback_failed", ticker=self._name, err=str(e))
