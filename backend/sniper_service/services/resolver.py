"""Result resolver for expired signals.

Rules:
- A signal is resolved only once its expiry has passed
- Realized price is the close of the first 1s bar at or after expiry,
  falling back to the latest bar; with no bars the signal is deferred
- CALL wins if final >= entry midpoint, PUT wins if final <= midpoint
- An entry zone that cannot be parsed resolves to UNKNOWN
- WIN/LOSS outcomes update the learner with the FeatureVector stored
  on the signal at creation time
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Sequence

from sniper import BarStore, EventPublisher, OnlineLearner, SignalStore
from sniper.models import Bar, Direction, Event, Signal, SignalResult

logger = logging.getLogger(__name__)

# Entry zone separators: en/em dash, or a spaced hyphen / tilde
_ZONE_SPLIT = re.compile(r"\s*[–—]\s*|\s+-\s+|\s*~\s*")
_RESOLVED_MEMORY = 10_000


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving one signal."""

    signal_id: int
    symbol: str
    result: SignalResult
    final_price: float
    entry_mid: float | None


def parse_entry_zone(entry: str | None) -> tuple[float, float] | None:
    """Parse "low – high" into two floats (thousands separators allowed)."""
    if not entry:
        return None
    parts = [p for p in _ZONE_SPLIT.split(entry.strip()) if p]
    if len(parts) != 2:
        return None
    try:
        low, high = (float(p.replace(",", "")) for p in parts)
    except ValueError:
        return None
    if not (math.isfinite(low) and math.isfinite(high)):
        return None
    return low, high


def evaluate_outcome(
    direction: Direction,
    entry: str | None,
    final_price: float,
) -> tuple[SignalResult, float | None]:
    """Compare the realized price with the entry midpoint.

    Returns:
        (result, entry_mid); entry_mid is None when the zone is unparsable
    """
    zone = parse_entry_zone(entry)
    if zone is None:
        return SignalResult.UNKNOWN, None

    entry_mid = (zone[0] + zone[1]) / 2
    if direction == Direction.CALL:
        won = final_price >= entry_mid
    else:
        won = final_price <= entry_mid
    return (SignalResult.WIN if won else SignalResult.LOSS), entry_mid


def find_realized_bar(bars: Sequence[Bar], expiry_ts: float) -> Bar | None:
    """First bar at or after expiry, else the latest bar, else None."""
    expiry_sec = int(math.floor(expiry_ts))
    for bar in bars:
        if bar.time >= expiry_sec:
            return bar
    return bars[-1] if bars else None


class ResultResolver:
    """Poll the signal store and resolve expired signals.

    This service:
    1. Lists recent PENDING signals from the store
    2. Skips those whose expiry has not passed yet
    3. Reads the realized price from the bar store
    4. Persists WIN / LOSS / UNKNOWN
    5. Feeds WIN / LOSS back to the learner
    6. Publishes a `signal_result` event
    """

    def __init__(
        self,
        store: SignalStore,
        bar_store: BarStore,
        learner: OnlineLearner | None = None,
        publisher: EventPublisher | None = None,
        check_interval: float = 5.0,
        batch_limit: int = 200,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: Signal store to poll and update
            bar_store: Source of realized prices
            learner: Optional learner receiving outcomes
            publisher: Optional sink for signal_result events
            check_interval: Seconds between cycles
            batch_limit: Max signals examined per cycle
            clock: Time source (Unix seconds)
        """
        if check_interval <= 0:
            raise ValueError(f"check_interval must be positive, got {check_interval}")

        self.store = store
        self.bar_store = bar_store
        self.learner = learner
        self.publisher = publisher
        self.check_interval = check_interval
        self.batch_limit = batch_limit
        self._clock = clock

        # Ids already resolved by this instance
        self._resolved_ids: set[int] = set()
        self._resolved_order: deque[int] = deque()

        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop (no-op if already running)."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="result-resolver")

    async def stop(self) -> None:
        """Stop after the in-flight cycle completes."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Result resolver stopped")

    async def _run(self) -> None:
        logger.info(f"Result resolver started: every {self.check_interval}s")
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.check_interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> list[Resolution]:
        """Run one resolution cycle.

        Returns:
            Resolutions made in this cycle
        """
        try:
            records = await self.store.list_unresolved(self.batch_limit)
        except Exception as e:
            logger.warning(f"Failed to list unresolved signals, retrying next cycle: {e}")
            return []

        now = self._clock()
        resolutions: list[Resolution] = []
        for record in records:
            try:
                resolution = await self.resolve(record, now)
            except Exception as e:
                logger.warning(f"Failed to resolve signal {record.id} ({record.symbol}): {e}")
                continue
            if resolution is not None:
                resolutions.append(resolution)
        return resolutions

    async def resolve(self, record: Signal, now: float) -> Resolution | None:
        """Resolve a single record if it is due.

        Returns:
            Resolution, or None if the record is not due, already
            resolved or not yet resolvable
        """
        if record.id is None or record.expiry_at is None:
            return None
        if record.result != SignalResult.PENDING or record.id in self._resolved_ids:
            return None

        expiry_ts = record.expiry_at.timestamp()
        if now < expiry_ts:
            return None

        bar = find_realized_bar(self.bar_store.get_bars(record.symbol), expiry_ts)
        if bar is None or not math.isfinite(bar.close):
            logger.debug(f"No price for {record.symbol} yet, deferring signal {record.id}")
            return None

        final_price = bar.close
        result, entry_mid = evaluate_outcome(record.direction, record.entry, final_price)

        updated = await self.store.update(record.id, result)
        self._remember(record.id)
        if not updated:
            logger.info(f"Signal {record.id} was already resolved, skipping")
            return None

        logger.info(
            f"Signal {record.id} {record.symbol} {record.direction.value} -> {result.value} "
            f"(final={final_price} mid={entry_mid})"
        )

        if self.learner is not None and result in (SignalResult.WIN, SignalResult.LOSS):
            await self.learner.record_outcome(
                record.features, 1 if result == SignalResult.WIN else 0
            )

        await self._publish_result(record, result, final_price, now)

        return Resolution(
            signal_id=record.id,
            symbol=record.symbol,
            result=result,
            final_price=final_price,
            entry_mid=entry_mid,
        )

    def _remember(self, signal_id: int) -> None:
        if signal_id in self._resolved_ids:
            return
        self._resolved_ids.add(signal_id)
        self._resolved_order.append(signal_id)
        if len(self._resolved_order) > _RESOLVED_MEMORY:
            self._resolved_ids.discard(self._resolved_order.popleft())

    async def _publish_result(
        self,
        record: Signal,
        result: SignalResult,
        final_price: float,
        now: float,
    ) -> None:
        if self.publisher is None:
            return
        event = Event(
            type="signal_result",
            data={
                "id": record.id,
                "symbol": record.symbol,
                "time": record.created_at.isoformat(),
                "result": result.value,
                "finalPrice": final_price,
            },
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        try:
            await self.publisher.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish result for signal {record.id}: {e}")
