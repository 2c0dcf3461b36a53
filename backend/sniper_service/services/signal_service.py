"""Periodic signal emission.

Every `interval` seconds the service scores each watched symbol. Any
signal produced is persisted through the signal store and published
as a `signal` event followed by a `log` line. The same path serves
on-demand requests from the API.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable

from sniper import EventPublisher, ScoringEngine, SignalStore
from sniper.models import Event, Signal

logger = logging.getLogger(__name__)


class SignalService:
    """Scoring loop over the watched symbols.

    Usage:
        service = SignalService(engine, store, publisher, symbols=["BTCUSDT"])
        service.start()
        ...
        await service.stop()
    """

    def __init__(
        self,
        engine: ScoringEngine,
        store: SignalStore,
        publisher: EventPublisher | None = None,
        symbols: Iterable[str] = (),
        market: str = "binary",
        interval: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            engine: Scoring engine used for every symbol
            store: Signal store receiving emitted signals
            publisher: Optional sink for signal/log events
            symbols: Watched symbols
            market: Default market label
            interval: Seconds between scoring cycles
            clock: Time source (Unix seconds)
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.engine = engine
        self.store = store
        self.publisher = publisher
        self.symbols = [s.upper() for s in symbols]
        self.market = market
        self.interval = interval
        self._clock = clock

        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._emitted = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def emitted_count(self) -> int:
        return self._emitted

    def start(self) -> None:
        """Start the periodic loop (no-op if already running)."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="signal-service")

    async def stop(self) -> None:
        """Stop after the in-flight cycle completes."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Signal service stopped")

    async def _run(self) -> None:
        logger.info(f"Signal service started: {self.symbols} every {self.interval}s")
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> list[Signal]:
        """Score every watched symbol once.

        Failures are logged per symbol and do not stop the cycle.
        """
        emitted: list[Signal] = []
        for symbol in self.symbols:
            try:
                signal = await self.emit(symbol, self.market)
            except Exception as e:
                logger.warning(f"Signal cycle failed for {symbol}: {e}")
                continue
            if signal is not None:
                emitted.append(signal)
        return emitted

    async def request_signal(
        self,
        symbol: str,
        market: str | None = None,
        publish: bool = True,
    ) -> Signal | None:
        """Compute, persist and (optionally) publish a signal right now.

        Returns:
            The stored signal, or None if the symbol lacks history
        """
        return await self.emit(symbol.upper(), market or self.market, publish=publish)

    async def emit(self, symbol: str, market: str, publish: bool = True) -> Signal | None:
        signal = self.engine.compute_signal(symbol, market=market)
        if signal is None:
            return None

        signal_id = await self.store.insert(signal)
        signal = signal.model_copy(update={"id": signal_id})
        self._emitted += 1

        logger.info(
            f"Signal #{signal_id} {signal.symbol} {signal.direction.value} "
            f"conf={signal.confidence} entry={signal.entry}"
        )

        if publish:
            await self._publish("signal", signal.to_event_data())
            await self._publish(
                "log",
                f"Signal {signal.symbol} {signal.direction.value} conf:{signal.confidence}",
            )
        return signal

    async def _publish(self, event_type: str, data: dict | str) -> None:
        if self.publisher is None:
            return
        event = Event(
            type=event_type,
            data=data,
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
        )
        try:
            await self.publisher.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event_type} event: {e}")
