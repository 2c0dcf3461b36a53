"""Scoring configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ScoringConfig(BaseModel):
    """Scoring engine parameters.

    Defaults reproduce the reference heuristics; every value can be
    overridden from settings.
    """

    # History requirements
    min_bars: int = Field(default=40, ge=1)

    # Indicator periods
    ma_short_period: int = 5
    ma_long_period: int = 20
    rsi_period: int = 14
    indicator_lookback: int = 120  # closes fed to indicators

    # Score adjustments
    base_score: int = 50
    m1_trend_weight: int = 8
    m5_trend_weight: int = 6
    rsi_oversold: float = 35.0
    rsi_overbought: float = 65.0
    rsi_weight: int = 10
    volume_spike_mult: float = 2.2
    volume_window: int = 60
    volume_weight: int = 8
    wick_weight: int = 6
    manipulation_divisor: float = 4.0

    # Decision thresholds
    min_confidence: int = 10
    max_confidence: int = 99
    call_threshold: int = 60
    put_threshold: int = 40
    multiplier_min_confidence: int = 75

    # Entry zone and expiry
    entry_band: float = 0.001  # +/- 0.1% around the last close
    round_number_tolerance: float = 0.0005
    high_denomination_markers: list[str] = Field(default_factory=lambda: ["BTC"])
    expiry_seconds: int = Field(default=60, gt=0)
