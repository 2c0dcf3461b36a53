"""Bar aggregator for deriving coarser series from 1-second bars.

Aggregation rules:
- Bucket start is floor(time / width) * width
- Open from the first bar in the bucket, close from the last
- High/low are the extremes, volume is summed

Coarser series are never stored; they are recomputed from the
second-resolution series on demand. `aggregate` keeps no state, so the
same input always yields the same output.
"""

from typing import Iterable

from sniper.models import Bar

# Timeframe to bucket width mapping
TIMEFRAME_SECONDS = {
    "1s": 1,
    "1m": 60,
    "5m": 300,
    "15m": 900,
}


def aggregate(bars: Iterable[Bar], width: int) -> list[Bar]:
    """Aggregate a time-ordered bar series into `width`-second buckets.

    Args:
        bars: Bars sorted by time, oldest first
        width: Target bucket width in seconds

    Returns:
        New list of aggregated bars (input bars are not modified)
    """
    if width <= 0:
        raise ValueError(f"width must be positive, got {width}")

    out: list[Bar] = []
    bucket: Bar | None = None

    for bar in bars:
        start = (int(bar.time) // width) * width
        if bucket is None or bucket.time != start:
            bucket = Bar(
                time=start,
                open=bar.open,
                high=bar.high,
                low=bar.low,
                close=bar.close,
                volume=bar.volume,
            )
            out.append(bucket)
        else:
            bucket.merge(bar.high, bar.low, bar.close, bar.volume)

    return out


def aggregate_timeframe(bars: Iterable[Bar], timeframe: str) -> list[Bar]:
    """Aggregate to a named timeframe ("1m", "5m", "15m")."""
    try:
        width = TIMEFRAME_SECONDS[timeframe]
    except KeyError:
        raise ValueError(f"Unknown timeframe: {timeframe}") from None
    return aggregate(bars, width)
