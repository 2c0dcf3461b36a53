"""Heuristics for suspicious price action: fake wicks, spread spikes, tick bursts.

`analyze_ticks` is stateless. Each check is guarded on its own, so an
empty tick list or a short bar window simply skips that check.
"""

import time
from dataclasses import dataclass, field
from typing import Sequence

from sniper.models import Bar, Tick

RECENT_TICK_SECONDS = 30
MIN_BURST_TICKS = 6
BURST_FLIP_RATIO = 0.4
WICK_BODY_MULT = 3.0
SPREAD_WINDOW = 10
SPREAD_RANGE_RATIO = 0.6
ZERO_BODY = 1e-9

ZERO_BODY_WICK_POINTS = 15
LONG_WICK_POINTS = 12
TICK_BURST_POINTS = 10
SPREAD_SPIKE_POINTS = 10


@dataclass(slots=True)
class ManipulationReport:
    """Flags and 0-100 suspicion score for one symbol."""

    suspicious_wick: bool = False
    spread_spike: bool = False
    tick_burst: bool = False
    score: int = 0
    reasons: list[str] = field(default_factory=list)

    @property
    def flagged(self) -> bool:
        return self.score > 0


def analyze_ticks(
    ticks: Sequence[Tick] = (),
    bars: Sequence[Bar] = (),
    now: float | None = None,
) -> ManipulationReport:
    """Score recent ticks and bars for manipulation.

    Args:
        ticks: Recent raw ticks for the symbol, oldest first (optional)
        bars: Recent bars for the symbol, oldest first
        now: Reference Unix time for the tick window (defaults to wall clock)

    Returns:
        ManipulationReport with the score clamped to [0, 100]
    """
    report = ManipulationReport()

    if bars:
        _check_wick(bars[-1], report)

    if len(ticks) >= MIN_BURST_TICKS:
        _check_tick_burst(ticks, time.time() if now is None else now, report)

    if len(bars) >= SPREAD_WINDOW:
        _check_spread(bars[-SPREAD_WINDOW:], report)

    report.score = min(100, max(0, report.score))
    return report


def _check_wick(last: Bar, report: ManipulationReport) -> None:
    body = last.body_size
    upper, lower = last.upper_wick, last.lower_wick
    if body < ZERO_BODY:
        if upper > 0 or lower > 0:
            report.suspicious_wick = True
            report.reasons.append("tiny body with large wick")
            report.score += ZERO_BODY_WICK_POINTS
    elif upper > body * WICK_BODY_MULT or lower > body * WICK_BODY_MULT:
        report.suspicious_wick = True
        report.reasons.append("wick > 3x body")
        report.score += LONG_WICK_POINTS


def _check_tick_burst(ticks: Sequence[Tick], now: float, report: ManipulationReport) -> None:
    recent = [t for t in ticks if t.timestamp >= now - RECENT_TICK_SECONDS]
    if len(recent) < MIN_BURST_TICKS:
        return

    flips = 0
    for i in range(1, len(recent)):
        move = recent[i].price - recent[i - 1].price
        prior = recent[i - 1].price - recent[i - 2].price if i >= 2 else 0.0
        if move * prior < 0:
            flips += 1

    if flips > len(recent) * BURST_FLIP_RATIO:
        report.tick_burst = True
        report.reasons.append("rapid alternation of ticks (burst)")
        report.score += TICK_BURST_POINTS


def _check_spread(window: Sequence[Bar], report: ManipulationReport) -> None:
    total_range = max(b.high for b in window) - min(b.low for b in window)
    last = window[-1]
    if total_range > 0 and last.range_size > total_range * SPREAD_RANGE_RATIO:
        report.spread_spike = True
        report.reasons.append("bar range spike compared to recent range")
        report.score += SPREAD_SPIKE_POINTS
