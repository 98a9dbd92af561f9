from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
import structlog

from watcher.utils.backoff import jitter, next_backoff
from watcher.utils.types import NotifyResult

log = structlog.get_logger("telegram")

API_BASE = "https://api.telegram.org"

# --------- small rate limiter (token bucket) ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            if self.updated is None:
                self.updated = now
            # refill
            self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                await asyncio.sleep((1.0 - self.tokens) / self.rate)
                self.updated = loop.time()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & client ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                     # personal chat id or group id
    thread_id: Optional[int] = None  # forum topic; dropped on a 400 and retried once
    timeout_s: float = 8.0
    per_chat_rate_per_sec: float = 1.0
    per_chat_burst: int = 3
    max_retries: int = 5
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0


class TelegramNotifier:
    """
    Bot API notifier: sendMessage / editMessageText / pinChatMessage.

    Every call is rate limited per chat and retried on 429 (honouring
    retry_after) and 5xx / network errors with jittered backoff. Failures are
    returned as NotifyResult(success=False), never raised.
    """
    def __init__(self, cfg: TelegramConfig):
        self.cfg = cfg
        self._session: Optional[aiohttp.ClientSession] = None
        self._rl = RateLimiter(rate_per_sec=cfg.per_chat_rate_per_sec, burst=cfg.per_chat_burst)

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ---- Notifier ----

    async def send(self, text: str) -> NotifyResult:
        return await self._send_message(text, parse_mode=None)

    async def send_formatted(self, html: str) -> NotifyResult:
        return await self._send_message(html, parse_mode="HTML")

    async def edit(self, message_id: int, text: str) -> NotifyResult:
        payload = {
            "chat_id": self.cfg.chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        res = await self._call("editMessageText", payload)
        if not res.success and res.error and "message is not modified" in res.error:
            # identical content, Telegram refuses the no-op edit
            return NotifyResult(success=True, message_id=message_id)
        if res.success:
            res.message_id = message_id
        return res

    async def pin(self, message_id: int) -> NotifyResult:
        payload = {"chat_id": self.cfg.chat_id, "message_id": message_id, "disable_notification": True}
        res = await self._call("pinChatMessage", payload)
        if res.success:
            res.message_id = message_id
        return res

    # ---- internals ----

    async def _send_message(self, text: str, parse_mode: Optional[str]) -> NotifyResult:
        payload: dict[str, Any] = {
            "chat_id": self.cfg.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if self.cfg.thread_id is not None:
            res = await self._call("sendMessage", {**payload, "message_thread_id": self.cfg.thread_id})
            if res.success or not (res.error or "").startswith("400"):
                return res
            log.warning("telegram_thread_rejected", thread_id=self.cfg.thread_id, err=res.error)
        return await self._call("sendMessage", payload)

    async def _call(self, method: str, payload: dict[str, Any]) -> NotifyResult:
        await self.start()
        assert self._session is not None
        url = f"{API_BASE}/bot{self.cfg.bot_token}/{method}"

        backoff = self.cfg.initial_backoff_s
        error = "no attempts made"
        for attempt in range(1, self.cfg.max_retries + 1):
            await self._rl.acquire()
            try:
                async with self._session.post(url, json=payload) as resp:
                    data = await _maybe_json(resp)
                    if resp.status == 200 and data.get("ok"):
                        result = data.get("result")
                        msg = result if isinstance(result, dict) else None
                        return NotifyResult(
                            success=True,
                            message_id=msg.get("message_id") if msg else None,
                            message=msg,
                        )
                    desc = data.get("description") or f"HTTP {resp.status}"
                    error = f"{resp.status} {desc}"
                    log.warning("telegram_send_failed", method=method, status=resp.status, err=desc, attempt=attempt)
                    if resp.status == 429:
                        ra = (data.get("parameters") or {}).get("retry_after")
                        await asyncio.sleep(float(ra) if ra else jitter(backoff))
                        backoff = next_backoff(backoff, self.cfg.max_backoff_s)
                        continue
                    if 500 <= resp.status < 600:
                        await asyncio.sleep(jitter(backoff))
                        backoff = next_backoff(backoff, self.cfg.max_backoff_s)
                        continue
                    # other 4xx: don't retry
                    return NotifyResult(success=False, error=error)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                error = f"{type(e).__name__}: {e}"
                log.warning("telegram_network_error", method=method, err=str(e), attempt=attempt)
                await asyncio.sleep(jitter(backoff))
                backoff = next_backoff(backoff, self.cfg.max_backoff_s)
        log.error("telegram_give_up_after_retries", method=method, err=error)
        return NotifyResult(success=False, error=error)


async def _maybe_json(resp: aiohttp.ClientResponse) -> dict:
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}
