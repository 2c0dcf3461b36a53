"""Scoring engine: bars in, CALL/PUT signal with a bounded confidence out.

Score composition (starting from 50):
- 1m SMA5 vs SMA20: +/-8
- 5m SMA5 vs SMA20: +/-6
- 1m RSI14 < 35: +10, > 65: -10
- 1s volume spike (> 2.2x 60-bar mean): +8
- 1m wick bias (lower wick dominant: +6, upper: -6)
- structure confluence on 1m bars (BOS, CHoCH, sweep, FVG, OB)
- manipulation penalty: -round(score / 4)
- learned boost from the online learner

The final score is clamped to [10, 99]. This module is pure business
logic: it reads the bar store and the learner but never writes them.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from sniper.aggregator import TIMEFRAME_SECONDS, aggregate
from sniper.bar_store import BarStore
from sniper.indicators import last_valid, round_half_up, rsi, sma
from sniper.learner import OnlineLearner
from sniper.manipulation import analyze_ticks
from sniper.models import (
    Bar,
    Direction,
    FeatureVector,
    ScoringConfig,
    Signal,
)
from sniper.patterns import confluence_score

logger = logging.getLogger(__name__)


class ScoringEngine:
    """Compute signals on demand for any symbol in the bar store.

    Usage:
        engine = ScoringEngine(bar_store, learner)
        signal = engine.compute_signal("BTCUSDT", market="binary")
    """

    def __init__(
        self,
        bar_store: BarStore,
        learner: OnlineLearner,
        config: ScoringConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.bar_store = bar_store
        self.learner = learner
        self.config = config or ScoringConfig()
        self._clock = clock

    def compute_signal(self, symbol: str, market: str = "binary") -> Signal | None:
        """Score the symbol's current history.

        Args:
            symbol: Trading symbol
            market: Market label copied onto the signal

        Returns:
            Signal with result PENDING, or None while history is
            shorter than `min_bars`
        """
        cfg = self.config
        bars = self.bar_store.get_bars(symbol)
        if len(bars) < cfg.min_bars:
            logger.debug(f"{symbol}: {len(bars)}/{cfg.min_bars} bars, no signal yet")
            return None

        now = self._clock()
        m1 = aggregate(bars, TIMEFRAME_SECONDS["1m"])
        m5 = aggregate(bars, TIMEFRAME_SECONDS["5m"])

        closes_1s = [b.close for b in bars][-cfg.indicator_lookback:]
        closes_m1 = [b.close for b in m1][-cfg.indicator_lookback:]
        closes_m5 = [b.close for b in m5][-cfg.indicator_lookback:]

        short_m1 = last_valid(sma(closes_m1, cfg.ma_short_period))
        long_m1 = last_valid(sma(closes_m1, cfg.ma_long_period))
        rsi_m1 = last_valid(rsi(closes_m1, cfg.rsi_period))
        short_m5 = last_valid(sma(closes_m5, cfg.ma_short_period))
        long_m5 = last_valid(sma(closes_m5, cfg.ma_long_period))

        score = float(cfg.base_score)

        if short_m1 is not None and long_m1 is not None:
            score += cfg.m1_trend_weight if short_m1 > long_m1 else -cfg.m1_trend_weight
        if short_m5 is not None and long_m5 is not None:
            score += cfg.m5_trend_weight if short_m5 > long_m5 else -cfg.m5_trend_weight
        if rsi_m1 is not None:
            if rsi_m1 < cfg.rsi_oversold:
                score += cfg.rsi_weight
            elif rsi_m1 > cfg.rsi_overbought:
                score -= cfg.rsi_weight

        volume_spike = self._is_volume_spike(bars)
        if volume_spike:
            score += cfg.volume_weight

        last_m1 = m1[-1]
        lower_wick_bias = last_m1.lower_wick > last_m1.upper_wick
        if lower_wick_bias:
            score += cfg.wick_weight
        elif last_m1.upper_wick > last_m1.lower_wick:
            score -= cfg.wick_weight

        confluence = confluence_score(m1)
        score += confluence.score

        manipulation = analyze_ticks(self.bar_store.get_recent_ticks(symbol), m1, now=now)
        penalty = round_half_up(manipulation.score / cfg.manipulation_divisor)
        score -= penalty

        price = bars[-1].close
        near_round = abs(round(price) - price) < price * cfg.round_number_tolerance

        features = FeatureVector.from_flags(
            break_of_structure=confluence.bos.detected,
            fair_value_gap=confluence.fvg.detected,
            volume_spike=volume_spike,
            wick_bias=lower_wick_bias,
            round_number=near_round,
            manipulation=manipulation.flagged,
        )
        boost = self.learner.predict_boost(features)
        score += boost

        confidence = max(cfg.min_confidence, min(cfg.max_confidence, round_half_up(score)))

        if confidence >= cfg.call_threshold:
            direction = Direction.CALL
        elif confidence <= cfg.put_threshold:
            direction = Direction.PUT
        else:
            trend_up = self._trend_up(short_m1, long_m1, closes_1s)
            direction = Direction.CALL if trend_up else Direction.PUT

        decimals = self.price_decimals(symbol)
        entry_low = round(price * (1 - cfg.entry_band), decimals)
        entry_high = round(price * (1 + cfg.entry_band), decimals)

        created_at = datetime.fromtimestamp(now, tz=timezone.utc)
        notes = ["M1/M5 confluence", *confluence.describe()]
        if volume_spike:
            notes.append("volume spike")
        if near_round:
            notes.append("round number")
        if manipulation.flagged:
            notes.append(f"manip {manipulation.score}: {', '.join(manipulation.reasons)}")
        if boost:
            notes.append(f"ai {boost:+d}")

        signal = Signal(
            symbol=symbol,
            market=market,
            direction=direction,
            entry_low=entry_low,
            entry_high=entry_high,
            entry=f"{entry_low:.{decimals}f} – {entry_high:.{decimals}f}",
            confidence=confidence,
            multiplier_flag=(
                confidence >= cfg.multiplier_min_confidence and not manipulation.flagged
            ),
            notes=" | ".join(notes),
            features=features,
            created_at=created_at,
            expiry_at=created_at + timedelta(seconds=cfg.expiry_seconds),
        )

        logger.debug(
            f"{symbol}: {direction.value} conf={confidence} "
            f"(confluence={confluence.score} manip=-{penalty} ai={boost:+d})"
        )
        return signal

    def price_decimals(self, symbol: str) -> int:
        """0 decimals for high-denomination symbols, 4 otherwise."""
        upper = symbol.upper()
        if any(marker.upper() in upper for marker in self.config.high_denomination_markers):
            return 0
        return 4

    def _is_volume_spike(self, bars: list[Bar]) -> bool:
        window = [b.volume for b in bars[-self.config.volume_window:]]
        if not window:
            return False
        avg = sum(window) / len(window)
        return window[-1] > avg * self.config.volume_spike_mult

    def _trend_up(
        self,
        short_m1: float | None,
        long_m1: float | None,
        closes_1s: list[float],
    ) -> bool:
        """Trend fallback for scores inside the neutral band.

        Uses the 1m SMA comparison when available, otherwise the same
        comparison on 1s closes, otherwise first vs last close.
        """
        if short_m1 is not None and long_m1 is not None:
            return short_m1 > long_m1

        short_1s = last_valid(sma(closes_1s, self.config.ma_short_period))
        long_1s = last_valid(sma(closes_1s, self.config.ma_long_period))
        if short_1s is not None and long_1s is not None:
            return short_1s > long_1s

        return closes_1s[-1] > closes_1s[0]
