"""Technical indicators for scoring (pure NumPy math, no I/O).

Every function returns a list aligned with its input; warm-up
positions that cannot be computed yet are NaN.
"""

import math
from typing import Sequence

import numpy as np


def sma(values: Sequence[float], period: int) -> list[float]:
    """Calculate the simple moving average."""
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    if len(values) < period:
        return [math.nan] * len(values)

    arr = np.asarray(values, dtype=np.float64)
    result = np.full_like(arr, np.nan)

    # Rolling mean via cumulative sums
    csum = np.cumsum(np.insert(arr, 0, 0.0))
    result[period - 1:] = (csum[period:] - csum[:-period]) / period

    return result.tolist()


def rsi(values: Sequence[float], period: int = 14) -> list[float]:
    """Calculate RSI with Wilder smoothing.

    The first average gain/loss is the simple mean of the first
    `period` changes; later values use (prev * (period - 1) + x) / period.
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    n = len(values)
    if n <= period:
        return [math.nan] * n

    arr = np.asarray(values, dtype=np.float64)
    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    result = np.full(n, np.nan)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        result[i] = _rsi_value(avg_gain, avg_loss)

    return result.tolist()


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def round_half_up(value: float) -> int:
    """Round .5 away from zero toward +inf (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def last_valid(values: Sequence[float]) -> float | None:
    """Latest value of an indicator series, or None while warming up."""
    if not values:
        return None
    value = values[-1]
    if value is None or math.isnan(value):
        return None
    return float(value)
