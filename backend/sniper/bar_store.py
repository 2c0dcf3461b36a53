"""Per-symbol store of second-resolution bars.

The store is the single source of price history. Market feeds push
prints through `append_tick`; everything else reads immutable
snapshots. Each symbol's series is guarded by its own lock, so feeds
for different symbols never contend.
"""

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass, field

from sniper.models import Bar, BarSeries, Tick

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_MAX = 7200  # ~2 hours of 1s bars
DEFAULT_TICK_WINDOW = 256


@dataclass(slots=True)
class _SymbolState:
    series: BarSeries
    ticks: deque
    lock: threading.Lock = field(default_factory=threading.Lock)
    rejected: int = 0


class BarStore:
    """Bounded second-resolution OHLCV series for every symbol.

    Usage:
        store = BarStore(history_max=7200)
        store.append_tick("BTCUSDT", 65000.0, 0.01, 1700000000)
        bars = store.get_bars("BTCUSDT")
    """

    def __init__(
        self,
        history_max: int = DEFAULT_HISTORY_MAX,
        tick_window: int = DEFAULT_TICK_WINDOW,
    ):
        """
        Args:
            history_max: Maximum bars kept per symbol (oldest evicted)
            tick_window: Recent ticks kept per symbol for manipulation checks
        """
        if history_max <= 0:
            raise ValueError(f"history_max must be positive, got {history_max}")
        if tick_window < 0:
            raise ValueError(f"tick_window must be >= 0, got {tick_window}")

        self.history_max = history_max
        self.tick_window = tick_window
        self._symbols: dict[str, _SymbolState] = {}
        self._registry_lock = threading.Lock()

    def _state(self, symbol: str, create: bool = False) -> _SymbolState | None:
        state = self._symbols.get(symbol)
        if state is None and create:
            with self._registry_lock:
                state = self._symbols.get(symbol)
                if state is None:
                    state = _SymbolState(
                        series=BarSeries(symbol=symbol, max_size=self.history_max),
                        ticks=deque(maxlen=self.tick_window),
                    )
                    self._symbols[symbol] = state
        return state

    def append_tick(
        self,
        symbol: str,
        price: float,
        quantity: float,
        timestamp: int | float,
    ) -> bool:
        """Fold a print into the symbol's current 1s bar.

        Opens a new bar when the print starts a new second, otherwise
        updates high/low/close/volume of the last bar in place.

        Args:
            symbol: Trading symbol
            price: Trade price (must be finite and positive)
            quantity: Trade quantity (must be finite and >= 0)
            timestamp: Unix time in seconds (fractions are floored)

        Returns:
            True if the tick was applied, False if it was rejected
        """
        try:
            price = float(price)
            quantity = float(quantity)
            timestamp = float(timestamp)
        except (TypeError, ValueError):
            logger.warning(f"Rejected malformed tick for {symbol}: {price!r} {quantity!r} {timestamp!r}")
            return False

        if not (math.isfinite(price) and math.isfinite(quantity) and math.isfinite(timestamp)):
            logger.warning(f"Rejected non-finite tick for {symbol}: price={price} qty={quantity}")
            return False
        if price <= 0 or quantity < 0:
            logger.warning(f"Rejected out-of-range tick for {symbol}: price={price} qty={quantity}")
            return False

        bucket = int(math.floor(timestamp))
        state = self._state(symbol, create=True)

        with state.lock:
            last = state.series.last
            if last is not None and bucket < last.time:
                state.rejected += 1
                logger.warning(
                    f"Out-of-order tick for {symbol}: t={bucket} < last bar {last.time}, rejected"
                )
                return False

            if last is None or last.time != bucket:
                state.series.append(
                    Bar(
                        time=bucket,
                        open=price,
                        high=price,
                        low=price,
                        close=price,
                        volume=quantity,
                    )
                )
            else:
                last.merge(price, price, price, quantity)

            if self.tick_window:
                state.ticks.append(Tick(symbol, price, quantity, bucket))

        return True

    def get_bars(self, symbol: str, limit: int | None = None) -> list[Bar]:
        """Get a snapshot of the symbol's 1s bars, oldest first.

        Args:
            symbol: Trading symbol
            limit: Return only the newest `limit` bars

        Returns:
            Copied bars (mutating them does not affect the store)
        """
        state = self._state(symbol)
        if state is None:
            return []
        with state.lock:
            bars = state.series.snapshot()
        if limit is not None:
            return bars[-limit:] if limit > 0 else []
        return bars

    def get_recent_ticks(self, symbol: str) -> list[Tick]:
        """Get the recent tick window for a symbol (oldest first)."""
        state = self._state(symbol)
        if state is None:
            return []
        with state.lock:
            return list(state.ticks)

    def bar_count(self, symbol: str) -> int:
        state = self._state(symbol)
        if state is None:
            return 0
        with state.lock:
            return len(state.series)

    def rejected_count(self, symbol: str) -> int:
        """Number of out-of-order ticks rejected for a symbol."""
        state = self._state(symbol)
        return state.rejected if state is not None else 0

    def symbols(self) -> list[str]:
        with self._registry_lock:
            return list(self._symbols)

    def clear(self, symbol: str | None = None) -> None:
        """Drop history.

        Args:
            symbol: Clear only this symbol, or everything if None
        """
        with self._registry_lock:
            if symbol is None:
                self._symbols.clear()
            else:
                self._symbols.pop(symbol, None)
