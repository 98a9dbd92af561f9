from __future__ import annotations

import html
import math
from datetime import datetime
from typing import Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from watcher.alerts.dispatcher import Trend, Trigger
from watcher.alerts.scoring import ScoredCandidate
from watcher.alerts.stepper import StepDecision
from watcher.alerts.watchlist import CatalystTrigger
from watcher.utils.types import ticker

TREND_MARK = {"new": "🟡", "up": "🟢", "down": "🔴", "flat": "⚪", "unseen": "⚪"}
RULE = "───────────────────────────────────"


def _fmt_ts(ts_s: float, tz_name: str) -> str:
    tz = ZoneInfo(tz_name)
    return datetime.fromtimestamp(ts_s, tz).strftime("%H:%M:%S")


def format_num(n: Optional[float]) -> str:
    """2_500_000 -> '2.5M', 12_000 -> '12K', None/NaN -> '-'."""
    if n is None or (isinstance(n, float) and math.isnan(n)):
        return "-"
    if n >= 1e9:
        return f"{n / 1e9:.1f}".removesuffix(".0") + "B"
    if n >= 1e6:
        return f"{n / 1e6:.1f}".removesuffix(".0") + "M"
    if n >= 1e3:
        return f"{round(n / 1e3)}K"
    return f"{n:g}"


def _price(px: Optional[float], digits: int = 2) -> str:
    if px is None or math.isnan(px):
        return "-"
    return f"${px:.{digits}f}"


# ---------------- premarket growth ---------------- #

def format_step_alert(d: StepDecision) -> str:
    row = d.row
    is_update = not d.is_new
    emoji = "📈" if is_update else "🚀"
    prefix = f"[STEP #{d.step_no}] " if d.step_no > 1 else ""
    was = f" (was {d.prev.last_value:.2f}%)" if is_update and d.prev is not None else ""
    dollar_vol = (row.premarket_volume or 0.0) * (row.premarket_close or 0.0)
    return "\n".join([
        f"{prefix}{emoji} {row.symbol}",
        f"• Price: {_price(row.premarket_close)}",
        f"• Change: {row.premarket_change:.2f}%{was}",
        f"• Float: {format_num(row.float_shares)}",
        f"• Vol: {format_num(row.premarket_volume)}",
        f"• $Dol-Vol$: {'$' + format_num(dollar_vol) if dollar_vol > 0 else '-'}",
    ])


def format_status(label: str, started: bool, window: str = "") -> str:
    suffix = f" ({window})" if window else ""
    if started:
        return f"🟢 {label} started{suffix}"
    return f"🔴 {label} stopped{suffix}"


# ---------------- market (shadow velocity) ---------------- #

def format_trigger(trig: Trigger) -> str:
    row = trig.candidate.row
    t = html.escape(ticker(row.symbol))
    if trig.kind == "NEW":
        return "\n".join([
            f"🚨 <b>NEW ALERT: {t}</b>",
            f"⚡️ RVOL: {row.rvol_5m or 0:.1f} | 📈 Chg: +{row.change_from_open or 0:.1f}%",
            f"💵 Value: ${format_num(row.value_traded)}",
            "Speculative entry. Mind the volatility!",
        ])
    if trig.kind == "PUMP":
        prev_rvol = trig.prev.rvol if trig.prev is not None and trig.prev.rvol is not None else 0.0
        return "\n".join([
            f"🔋 <b>{t}: Fuel Injection!</b>",
            f"Volume spiking! RVOL: {prev_rvol:.0f} → {row.rvol_5m or 0:.0f}.",
            "Breaking the local high?",
        ])
    return "\n".join([
        f"⚠️ <b>WARNING: {t} Dropping</b>",
        f"Price fell {abs(trig.delta):.1f}% since the last scan. Possible end of trend.",
    ])


def _pad(s: str, n: int, right: bool = False) -> str:
    s = s[:n]
    return s.rjust(n) if right else s.ljust(n)


def _dash_price(px: Optional[float]) -> str:
    if px is None:
        return "-"
    digits = 0 if px >= 100 else 1 if px >= 10 else 2
    return f"${px:.{digits}f}"


def format_dashboard(
    up: Sequence[ScoredCandidate],
    down: Sequence[ScoredCandidate],
    trends: Mapping[str, Trend],
    ts: float,
    tz_name: str = "America/New_York",
) -> str:
    lines = [f"🔥 <b>SHADOW VELOCITY DASHBOARD</b> [{_fmt_ts(ts, tz_name)}]", RULE]

    lines.append("🚀 <b>ALPHA SPRINT</b> (Long Momentum)")
    lines.append("<code>#  Ticker  Price   %Chg   RVOL   SVS</code>")
    if not up:
        lines.append("<code>   (no stocks matching criteria)</code>")
    for i, c in enumerate(up, 1):
        r = c.row
        mark = TREND_MARK[trends.get(r.symbol, "unseen")]
        chg = r.change_from_open or 0.0
        lines.append(
            f"<code>{_pad(f'{i}.', 3)}{mark}{html.escape(_pad(ticker(r.symbol), 6))} "
            f"{_pad(_dash_price(r.close), 7, True)} "
            f"{_pad(f'{chg:+.0f}%', 6, True)} "
            f"{_pad(f'{r.rvol_5m or 0:.0f}x', 6, True)} "
            f"{_pad(format_num(round(c.score)), 6, True)}</code>"
        )
    lines.append(RULE)

    lines.append("🐻 <b>INSTITUTIONAL BEAR</b> (Short/Avoid)")
    lines.append("<code>#  Ticker  Price   %Chg   Val($)</code>")
    if not down:
        lines.append("<code>   (no stocks matching criteria)</code>")
    for i, c in enumerate(down, 1):
        r = c.row
        lines.append(
            f"<code>{_pad(f'{i}.', 3)}🔴{html.escape(_pad(ticker(r.symbol), 6))} "
            f"{_pad(_dash_price(r.close), 7, True)} "
            f"{_pad(f'{r.change_from_open or 0:.0f}%', 6, True)} "
            f"{_pad('$' + format_num(r.value_traded), 7, True)}</code>"
        )
    lines.append(RULE)
    lines.append("Status: ✅ Active")
    return "\n".join(lines)


# ---------------- catalyst (gap & reverse) ---------------- #

def format_catalyst_alert(trig: CatalystTrigger) -> str:
    e = trig.entry
    fade = trig.strategy == "FADE"
    label = "FADE (Short)" if fade else "BOUNCE (Long)"
    icon = "📉" if fade else "🚀"
    status = "🔴 Breaking Below Open" if fade else "🟢 Breaking Above Open"
    action = "Watch for breakdown." if fade else "Watch for recovery."
    return "\n".join([
        "🎯 CATALYST SNIPER ALERT",
        "---------------------------",
        f"Strategy: {icon} {label}",
        f"Ticker:   ${ticker(e.symbol)}",
        f"Gap:      {e.gap:+.1f}%",
        f"Pre-Vol:  {e.pre_volume / 1_000_000:.1f}M",
        f"Status:   {status} ({trig.open_change:+.1f}%)",
        "---------------------------",
        f"Action: {action}",
    ])
