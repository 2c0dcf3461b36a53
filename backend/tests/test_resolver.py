"""Tests for the result resolver."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from sniper import BarStore, OnlineLearner
from sniper.models import Bar, Direction, FeatureVector, Signal, SignalResult
from sniper_service.services.resolver import (
    ResultResolver,
    evaluate_outcome,
    find_realized_bar,
    parse_entry_zone,
)
from sniper_service.storage import InMemorySignalRepository


CREATED = 1_700_000_000
EXPIRY = CREATED + 60


def make_signal(
    direction: Direction = Direction.CALL,
    entry: str = "99.0 – 101.0",
    symbol: str = "TESTUSD",
    features: FeatureVector | None = None,
) -> Signal:
    created_at = datetime.fromtimestamp(CREATED, tz=timezone.utc)
    return Signal(
        symbol=symbol,
        direction=direction,
        entry_low=99.0,
        entry_high=101.0,
        entry=entry,
        confidence=70,
        features=features or FeatureVector(),
        created_at=created_at,
        expiry_at=created_at + timedelta(seconds=60),
    )


def make_bar(time: int, close: float) -> Bar:
    return Bar(time=time, open=close, high=close, low=close, close=close, volume=1.0)


class TestParseEntryZone:
    """Tests for parse_entry_zone()."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("99.0 – 101.0", (99.0, 101.0)),
            ("1.0850 — 1.0870", (1.085, 1.087)),
            ("65,035 – 65,165", (65035.0, 65165.0)),
            ("99.5 - 100.5", (99.5, 100.5)),
            ("99.5~100.5", (99.5, 100.5)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_entry_zone(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["", None, "garbage", "1.0 – x", "1 – 2 – 3", "nan – 1"])
    def test_invalid(self, text):
        assert parse_entry_zone(text) is None


class TestEvaluateOutcome:
    """Tests for evaluate_outcome()."""

    def test_call(self):
        assert evaluate_outcome(Direction.CALL, "99 – 101", 105.0) == (SignalResult.WIN, 100.0)
        assert evaluate_outcome(Direction.CALL, "99 – 101", 100.0)[0] == SignalResult.WIN
        assert evaluate_outcome(Direction.CALL, "99 – 101", 99.9)[0] == SignalResult.LOSS

    def test_put(self):
        assert evaluate_outcome(Direction.PUT, "99 – 101", 95.0)[0] == SignalResult.WIN
        assert evaluate_outcome(Direction.PUT, "99 – 101", 100.0)[0] == SignalResult.WIN
        assert evaluate_outcome(Direction.PUT, "99 – 101", 100.1)[0] == SignalResult.LOSS

    def test_unparsable(self):
        assert evaluate_outcome(Direction.CALL, "n/a", 100.0) == (SignalResult.UNKNOWN, None)


class TestFindRealizedBar:
    """Tests for find_realized_bar()."""

    def test_first_bar_at_or_after_expiry(self):
        bars = [make_bar(EXPIRY - 1, 1.0), make_bar(EXPIRY + 2, 2.0), make_bar(EXPIRY + 3, 3.0)]
        assert find_realized_bar(bars, EXPIRY + 0.5).close == 2.0

    def test_exact_second(self):
        bars = [make_bar(EXPIRY - 1, 1.0), make_bar(EXPIRY, 2.0)]
        assert find_realized_bar(bars, EXPIRY).close == 2.0

    def test_falls_back_to_latest(self):
        bars = [make_bar(EXPIRY - 5, 1.0), make_bar(EXPIRY - 2, 2.0)]
        assert find_realized_bar(bars, EXPIRY).close == 2.0

    def test_no_bars(self):
        assert find_realized_bar([], EXPIRY) is None


class TestResultResolver:
    """Tests for ResultResolver."""

    @pytest.fixture
    def store(self):
        return InMemorySignalRepository()

    @pytest.fixture
    def bar_store(self):
        bars = BarStore()
        bars.append_tick("TESTUSD", 100.0, 1.0, EXPIRY - 10)
        bars.append_tick("TESTUSD", 105.0, 1.0, EXPIRY + 1)
        return bars

    @pytest.fixture
    def learner(self):
        learner = MagicMock(spec=OnlineLearner)
        learner.record_outcome = AsyncMock()
        return learner

    @pytest.fixture
    def publisher(self):
        publisher = MagicMock()
        publisher.publish = AsyncMock()
        return publisher

    def make_resolver(self, store, bar_store, learner=None, publisher=None, now=EXPIRY + 5):
        return ResultResolver(
            store,
            bar_store,
            learner=learner,
            publisher=publisher,
            check_interval=0.01,
            clock=lambda: now,
        )

    @pytest.mark.asyncio
    async def test_call_wins(self, store, bar_store, learner, publisher):
        signal_id = await store.insert(make_signal())
        resolver = self.make_resolver(store, bar_store, learner, publisher)

        resolutions = await resolver.run_once()

        assert len(resolutions) == 1
        assert resolutions[0].signal_id == signal_id
        assert resolutions[0].result == SignalResult.WIN
        assert resolutions[0].final_price == 105.0
        assert resolutions[0].entry_mid == 100.0

        stored = await store.get_by_id(signal_id)
        assert stored.result == SignalResult.WIN

    @pytest.mark.asyncio
    async def test_put_loses(self, store, bar_store, learner):
        signal_id = await store.insert(make_signal(direction=Direction.PUT))

        await self.make_resolver(store, bar_store, learner).run_once()

        assert (await store.get_by_id(signal_id)).result == SignalResult.LOSS
        learner.record_outcome.assert_awaited_once()
        assert learner.record_outcome.await_args[0][1] == 0

    @pytest.mark.asyncio
    async def test_not_resolved_before_expiry(self, store, bar_store, learner):
        signal_id = await store.insert(make_signal())
        resolver = self.make_resolver(store, bar_store, learner, now=EXPIRY - 1)

        assert await resolver.run_once() == []
        assert (await store.get_by_id(signal_id)).result == SignalResult.PENDING
        learner.record_outcome.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolved_only_once(self, store, bar_store, learner, publisher):
        await store.insert(make_signal())
        resolver = self.make_resolver(store, bar_store, learner, publisher)

        first = await resolver.run_once()
        second = await resolver.run_once()

        assert len(first) == 1
        assert second == []
        learner.record_outcome.assert_awaited_once()
        publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_two_resolvers_do_not_double_count(self, store, bar_store, learner):
        """The store's PENDING guard stops a second instance from resolving again."""
        await store.insert(make_signal())
        stale = await store.list_unresolved()
        a = self.make_resolver(store, bar_store, learner)
        b = self.make_resolver(store, bar_store, learner)

        await a.resolve(stale[0], EXPIRY + 5)
        assert await b.resolve(stale[0], EXPIRY + 5) is None

        learner.record_outcome.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unparsable_entry_is_unknown(self, store, bar_store, learner, publisher):
        signal_id = await store.insert(make_signal(entry="n/a"))

        resolutions = await self.make_resolver(store, bar_store, learner, publisher).run_once()

        assert resolutions[0].result == SignalResult.UNKNOWN
        assert (await store.get_by_id(signal_id)).result == SignalResult.UNKNOWN
        learner.record_outcome.assert_not_awaited()
        publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deferred_without_bars(self, store, learner):
        signal_id = await store.insert(make_signal(symbol="EMPTY"))
        resolver = self.make_resolver(store, BarStore(), learner)

        assert await resolver.run_once() == []
        assert (await store.get_by_id(signal_id)).result == SignalResult.PENDING

    @pytest.mark.asyncio
    async def test_learner_gets_stored_features(self, store, bar_store, learner):
        features = FeatureVector.from_flags(break_of_structure=True, manipulation=True)
        await store.insert(make_signal(features=features))

        await self.make_resolver(store, bar_store, learner).run_once()

        learner.record_outcome.assert_awaited_once_with(features, 1)

    @pytest.mark.asyncio
    async def test_real_learner_updates(self, store, bar_store):
        learner = OnlineLearner()
        await store.insert(make_signal(features=FeatureVector.from_flags(fair_value_gap=True)))

        await self.make_resolver(store, bar_store, learner).run_once()

        assert learner.weights["fvg"] == pytest.approx(0.05)
        assert learner.state.stats.wins == 1

    @pytest.mark.asyncio
    async def test_publishes_result_event(self, store, bar_store, publisher):
        signal_id = await store.insert(make_signal())

        await self.make_resolver(store, bar_store, publisher=publisher).run_once()

        event = publisher.publish.await_args[0][0]
        assert event.type == "signal_result"
        assert event.data["id"] == signal_id
        assert event.data["result"] == "WIN"
        assert event.data["finalPrice"] == 105.0

    @pytest.mark.asyncio
    async def test_record_error_does_not_stop_cycle(self, store, bar_store, learner):
        await store.insert(make_signal())
        await store.insert(make_signal())
        learner.record_outcome.side_effect = [RuntimeError("boom"), None]

        resolutions = await self.make_resolver(store, bar_store, learner).run_once()

        assert len(resolutions) == 1
        assert learner.record_outcome.await_count == 2

    @pytest.mark.asyncio
    async def test_list_failure_is_retried(self, bar_store):
        store = MagicMock()
        store.list_unresolved = AsyncMock(side_effect=[ConnectionError("db down"), []])
        resolver = self.make_resolver(store, bar_store)

        assert await resolver.run_once() == []
        assert await resolver.run_once() == []
        assert store.list_unresolved.await_count == 2

    @pytest.mark.asyncio
    async def test_publish_failure_is_logged(self, store, bar_store, publisher):
        publisher.publish.side_effect = RuntimeError("socket closed")
        await store.insert(make_signal())

        resolutions = await self.make_resolver(store, bar_store, publisher=publisher).run_once()

        assert len(resolutions) == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, bar_store):
        await store.insert(make_signal())
        resolver = self.make_resolver(store, bar_store)

        resolver.start()
        assert resolver.is_running
        await asyncio.sleep(0.05)
        await resolver.stop()

        assert not resolver.is_running
        assert (await store.list_unresolved()) == []

    def test_invalid_interval(self, store, bar_store):
        with pytest.raises(ValueError):
            ResultResolver(store, bar_store, check_interval=0)
