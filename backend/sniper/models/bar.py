"""Hot path tick and bar models.

These models use:
- @dataclass(slots=True) for minimal memory footprint
- float for prices and volumes
- Unix timestamps (int seconds) for time
"""

from collections import deque
from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class Tick:
    """A single trade print delivered by a market feed."""

    symbol: str
    price: float
    quantity: float
    timestamp: int  # Unix timestamp in seconds


@dataclass(slots=True)
class Bar:
    """OHLCV bar for one time bucket.

    `time` is the bucket start in Unix seconds.
    """

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def body(self) -> float:
        """Signed body (close - open)."""
        return self.close - self.open

    @property
    def body_size(self) -> float:
        """Get the absolute size of the candle body."""
        return abs(self.close - self.open)

    @property
    def range_size(self) -> float:
        """Get the full range (high - low) of the candle."""
        return self.high - self.low

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    def merge(self, price_high: float, price_low: float, close: float, volume: float) -> None:
        """Fold a later print (or finer bar) into this bar."""
        if price_high > self.high:
            self.high = price_high
        if price_low < self.low:
            self.low = price_low
        self.close = close
        self.volume += volume

    def copy(self) -> "Bar":
        return Bar(self.time, self.open, self.high, self.low, self.close, self.volume)


@dataclass(slots=True)
class BarSeries:
    """Bounded series of 1s bars for one symbol.

    Backed by a deque with maxlen, so appending at capacity evicts the
    oldest bar in O(1).
    """

    symbol: str
    max_size: int = 7200
    _bars: deque = field(init=False)

    def __post_init__(self) -> None:
        if self.max_size <= 0:
            raise ValueError(f"max_size must be positive, got {self.max_size}")
        self._bars = deque(maxlen=self.max_size)

    def append(self, bar: Bar) -> None:
        self._bars.append(bar)

    @property
    def last(self) -> Bar | None:
        return self._bars[-1] if self._bars else None

    def snapshot(self) -> list[Bar]:
        """Copy of the bars, oldest first. Safe to hand to detectors."""
        return [b.copy() for b in self._bars]


    def __len__(self) -> int:
        return len(self._bars)
