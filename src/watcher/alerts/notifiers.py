# src/watcher/alerts/notifiers.py
from __future__ import annotations

import itertools
from typing import Protocol

import structlog

from watcher.utils.types import NotifyResult

log = structlog.get_logger("notifier")


class Notifier(Protocol):
    """
    Delivery contract used by the workers. Implementations report failure as
    NotifyResult(success=False, error=...) instead of raising.
    """
    async def send(self, text: str) -> NotifyResult: ...

    async def send_formatted(self, html: str) -> NotifyResult: ...

    async def edit(self, message_id: int, text: str) -> NotifyResult: ...

    async def pin(self, message_id: int) -> NotifyResult: ...


class ConsoleNotifier:
    """Prints every message to stdout. Used when Telegram is not configured."""
    def __init__(self) -> None:
        self._ids = itertools.count(1)

    async def send(self, text: str) -> NotifyResult:
        message_id = next(self._ids)
        print(text, flush=True)
        return NotifyResult(success=True, message_id=message_id, message={"message_id": message_id, "text": text})

    async def send_formatted(self, html: str) -> NotifyResult:
        return await self.send(html)

    async def edit(self, message_id: int, text: str) -> NotifyResult:
        print(f"[edit #{message_id}]\n{text}", flush=True)
        return NotifyResult(success=True, message_id=message_id)

    async def pin(self, message_id: int) -> NotifyResult:
        log.debug("console_pin", message_id=message_id)
        return NotifyResult(success=True, message_id=message_id)
