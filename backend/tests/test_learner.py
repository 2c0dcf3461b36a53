"""Tests for the online learner and its state backends."""

import asyncio

import orjson
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from sniper import OnlineLearner
from sniper.models import FeatureVector, LearnerState, MANIPULATION_WEIGHT
from sniper_service.storage import learner_store
from sniper_service.storage.learner_store import JsonFileLearnerStore, RedisLearnerStore


def state_with(**weights: float) -> LearnerState:
    """Learner state with the given weights (others zero)."""
    state = LearnerState()
    state.weights.update(weights)
    return state


class TestPredictBoost:
    """Tests for OnlineLearner.predict_boost."""

    def test_default_weights_give_zero(self):
        learner = OnlineLearner()
        features = FeatureVector.from_flags(break_of_structure=True, fair_value_gap=True)
        assert learner.predict_boost(features) == 0

    def test_linear_in_weights(self):
        learner = OnlineLearner(state=state_with(bos=0.3, fvg=0.2, volume=1.0))
        features = FeatureVector.from_flags(break_of_structure=True, fair_value_gap=True)

        assert learner.predict_boost(features) == 5

    def test_manipulation_weight_applies(self):
        learner = OnlineLearner(state=state_with(bos=0.3, fvg=0.2, **{MANIPULATION_WEIGHT: -0.4}))
        features = FeatureVector.from_flags(
            break_of_structure=True, fair_value_gap=True, manipulation=True
        )

        assert learner.predict_boost(features) == 1

    def test_no_active_features(self):
        learner = OnlineLearner(state=state_with(bos=2.0, round=-3.0))
        assert learner.predict_boost(FeatureVector()) == 0


class TestRecordOutcome:
    """Tests for the perceptron update."""

    @pytest.mark.asyncio
    async def test_win_with_zero_prediction_raises_weights(self):
        learner = OnlineLearner()
        features = FeatureVector.from_flags(break_of_structure=True, manipulation=True)

        state = await learner.record_outcome(features, 1)

        assert state.weights["bos"] == pytest.approx(0.05)
        assert state.weights["fvg"] == 0.0
        # Manipulation weight moves against the error
        assert state.weights[MANIPULATION_WEIGHT] == pytest.approx(-0.05)
        assert state.stats.wins == 1
        assert state.stats.losses == 0

    @pytest.mark.asyncio
    async def test_correct_prediction_leaves_weights(self):
        learner = OnlineLearner(state=state_with(bos=0.5))
        features = FeatureVector.from_flags(break_of_structure=True)

        state = await learner.record_outcome(features, 1)

        assert state.weights["bos"] == 0.5
        assert state.stats.wins == 1

    @pytest.mark.asyncio
    async def test_loss_with_positive_prediction_lowers_weights(self):
        learner = OnlineLearner(state=state_with(bos=0.5))
        features = FeatureVector.from_flags(break_of_structure=True, manipulation=True)

        state = await learner.record_outcome(features, 0)

        assert state.weights["bos"] == pytest.approx(0.45)
        assert state.weights[MANIPULATION_WEIGHT] == pytest.approx(0.05)
        assert state.stats.losses == 1

    @pytest.mark.asyncio
    async def test_invalid_outcome(self):
        learner = OnlineLearner()
        with pytest.raises(ValueError):
            await learner.record_outcome(FeatureVector(), 2)

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_counted(self):
        learner = OnlineLearner()
        features = FeatureVector.from_flags(volume_spike=True)

        await asyncio.gather(*(learner.record_outcome(features, i % 2) for i in range(20)))

        stats = learner.state.stats
        assert stats.wins == 10
        assert stats.losses == 10
        assert stats.win_rate == 0.5

    @pytest.mark.asyncio
    async def test_custom_learning_rate(self):
        learner = OnlineLearner(learning_rate=0.2)
        state = await learner.record_outcome(FeatureVector.from_flags(wick_bias=True), 1)
        assert state.weights["wick"] == pytest.approx(0.2)

    def test_state_is_a_copy(self):
        learner = OnlineLearner()
        learner.state.weights["bos"] = 9.0
        assert learner.weights["bos"] == 0.0


class TestLearnerPersistence:
    """Tests for loading and saving through a store."""

    @pytest.fixture
    def mock_store(self):
        store = MagicMock()
        store.load = AsyncMock(return_value=None)
        store.save = AsyncMock(return_value=True)
        return store

    @pytest.mark.asyncio
    async def test_load_defaults_when_absent(self, mock_store):
        learner = OnlineLearner(store=mock_store)

        state = await learner.load()

        assert state.weights["bos"] == 0.0
        mock_store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_load_existing_state(self, mock_store):
        mock_store.load.return_value = state_with(bos=0.7)
        learner = OnlineLearner(store=mock_store)

        state = await learner.load()

        assert state.weights["bos"] == 0.7
        mock_store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_load_failure_falls_back(self, mock_store):
        mock_store.load.side_effect = RuntimeError("boom")
        learner = OnlineLearner(store=mock_store)

        state = await learner.load()

        assert state.weights == LearnerState().weights

    @pytest.mark.asyncio
    async def test_explicit_learning_rate_wins_over_loaded(self, mock_store):
        mock_store.load.return_value = LearnerState(learning_rate=0.5)
        learner = OnlineLearner(store=mock_store, learning_rate=0.01)

        state = await learner.load()

        assert state.learning_rate == 0.01

    @pytest.mark.asyncio
    async def test_loaded_learning_rate_kept_without_override(self, mock_store):
        mock_store.load.return_value = LearnerState(learning_rate=0.2)
        learner = OnlineLearner(store=mock_store)

        state = await learner.load()
        await learner.record_outcome(FeatureVector(), 1)

        assert state.learning_rate == 0.2
        saved = mock_store.save.await_args.args[0]
        assert saved.learning_rate == 0.2

    @pytest.mark.asyncio
    async def test_saves_after_every_update(self, mock_store):
        learner = OnlineLearner(store=mock_store)

        await learner.record_outcome(FeatureVector(), 1)
        await learner.record_outcome(FeatureVector(), 0)

        assert mock_store.save.await_count == 2
        saved = mock_store.save.await_args[0][0]
        assert saved.stats.losses == 1

    @pytest.mark.asyncio
    async def test_save_failure_does_not_raise(self, mock_store):
        mock_store.save.side_effect = OSError("disk full")
        learner = OnlineLearner(store=mock_store)

        state = await learner.record_outcome(FeatureVector(), 1)

        assert state.stats.wins == 1


class TestJsonFileLearnerStore:
    """Tests for the JSON file backend."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        store = JsonFileLearnerStore(tmp_path / "ai_learner.json")

        assert await store.save(state_with(bos=0.25)) is True
        loaded = await store.load()

        assert loaded is not None
        assert loaded.weights["bos"] == 0.25

        data = orjson.loads((tmp_path / "ai_learner.json").read_bytes())
        assert data["weights"]["bos"] == 0.25
        assert data["stats"] == {"wins": 0, "losses": 0}

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        assert await JsonFileLearnerStore(tmp_path / "missing.json").load() is None

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "ai_learner.json"
        path.write_text("{not json")
        assert await JsonFileLearnerStore(path).load() is None

    @pytest.mark.asyncio
    async def test_old_record_gets_missing_weights(self, tmp_path):
        path = tmp_path / "ai_learner.json"
        path.write_bytes(orjson.dumps({"weights": {"bos": 0.1}}))

        loaded = await JsonFileLearnerStore(path).load()

        assert loaded.weights["bos"] == 0.1
        assert loaded.weights[MANIPULATION_WEIGHT] == 0.0

    @pytest.mark.asyncio
    async def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = JsonFileLearnerStore(blocker / "state.json")

        assert await store.save(LearnerState()) is False

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path):
        store = JsonFileLearnerStore(tmp_path / "ai_learner.json")
        await store.save(LearnerState())
        await store.save(state_with(fvg=1.0))

        assert [p.name for p in tmp_path.iterdir()] == ["ai_learner.json"]

    @pytest.mark.asyncio
    async def test_learner_round_trip_through_file(self, tmp_path):
        """State written by one learner is picked up by the next."""
        path = tmp_path / "ai_learner.json"
        first = OnlineLearner(store=JsonFileLearnerStore(path))
        await first.load()
        await first.record_outcome(FeatureVector.from_flags(round_number=True), 1)

        second = OnlineLearner(store=JsonFileLearnerStore(path))
        state = await second.load()

        assert state.weights["round"] == pytest.approx(0.05)
        assert state.stats.wins == 1


class TestRedisLearnerStore:
    """Tests for the Redis backend."""

    @pytest.mark.asyncio
    async def test_save(self):
        store = RedisLearnerStore(key="learner:test")
        with patch.object(learner_store.cache, 'is_cache_available', return_value=True):
            with patch.object(learner_store.cache, 'set_json', new_callable=AsyncMock, return_value=True) as mock_set:
                assert await store.save(state_with(bos=0.3)) is True

                key, payload = mock_set.call_args[0]
                assert key == "learner:test"
                assert payload["weights"]["bos"] == 0.3

    @pytest.mark.asyncio
    async def test_load(self):
        cached = LearnerState(learning_rate=0.1).model_dump()
        store = RedisLearnerStore()
        with patch.object(learner_store.cache, 'is_cache_available', return_value=True):
            with patch.object(learner_store.cache, 'get_json', new_callable=AsyncMock, return_value=cached):
                state = await store.load()

        assert state is not None
        assert state.learning_rate == 0.1

    @pytest.mark.asyncio
    async def test_cache_unavailable(self):
        store = RedisLearnerStore()
        with patch.object(learner_store.cache, 'is_cache_available', return_value=False):
            with patch.object(learner_store.cache, 'init_cache', new_callable=AsyncMock, return_value=False) as mock_init:
                assert await store.load() is None
                assert await store.save(LearnerState()) is False

        mock_init.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_save_reconnects(self):
        """A save after Redis comes back connects and writes."""
        store = RedisLearnerStore()
        with patch.object(learner_store.cache, 'is_cache_available', return_value=False):
            with patch.object(learner_store.cache, 'init_cache', new_callable=AsyncMock, return_value=True) as mock_init:
                with patch.object(learner_store.cache, 'set_json', new_callable=AsyncMock, return_value=True) as mock_set:
                    assert await store.save(LearnerState()) is True

        mock_init.assert_awaited_once()
        mock_set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_corrupt_payload(self):
        store = RedisLearnerStore()
        with patch.object(learner_store.cache, 'is_cache_available', return_value=True):
            with patch.object(learner_store.cache, 'get_json', new_callable=AsyncMock, return_value={"learning_rate": -1}):
                assert await store.load() is None
