"""Online perceptron-style learner for score boosts.

The learner keeps one weight per binary feature. `predict_boost` turns
a FeatureVector into a small integer nudge for the confidence score;
`record_outcome` moves the weights toward observed WIN/LOSS results.
The boost is not a probability and the weights are not expected to
converge to calibrated values.

State is owned by the instance and injected wherever it is needed.
Persistence goes through a LearnerStateStore, written after every
update.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from sniper.indicators import round_half_up
from sniper.models import (
    MANIPULATION_WEIGHT,
    WEIGHT_FEATURES,
    FeatureVector,
    LearnerState,
)

logger = logging.getLogger(__name__)

BOOST_SCALE = 10


@runtime_checkable
class LearnerStateStore(Protocol):
    """Protocol that learner state backends must implement."""

    async def load(self) -> LearnerState | None:
        """Return the persisted state, or None if absent or unreadable."""
        ...

    async def save(self, state: LearnerState) -> bool:
        """Persist the full state atomically. Returns False on failure."""
        ...


class OnlineLearner:
    """Weight vector with a prediction boost and an outcome-driven update.

    Usage:
        learner = OnlineLearner(store=JsonFileLearnerStore(path))
        await learner.load()
        boost = learner.predict_boost(features)
        await learner.record_outcome(features, 1)
    """

    def __init__(
        self,
        store: LearnerStateStore | None = None,
        state: LearnerState | None = None,
        learning_rate: float | None = None,
    ):
        """
        Args:
            store: Optional persistence backend
            state: Initial state (defaults to zero weights)
            learning_rate: Overrides the state's learning rate when given
        """
        self._store = store
        self._state = state.model_copy(deep=True) if state else LearnerState()
        self._learning_rate_override = learning_rate
        if learning_rate is not None:
            self._state.learning_rate = learning_rate
        self._lock = asyncio.Lock()

    async def load(self) -> LearnerState:
        """Load persisted state, falling back to defaults.

        Returns:
            Copy of the state now in effect
        """
        if self._store is None:
            return self.state

        loaded: LearnerState | None = None
        try:
            loaded = await self._store.load()
        except Exception as e:
            logger.warning(f"Learner state load failed, using defaults: {e}")

        async with self._lock:
            if loaded is not None:
                self._state = loaded
                logger.info(
                    f"Loaded learner state: wins={loaded.stats.wins} "
                    f"losses={loaded.stats.losses}"
                )
            else:
                logger.info("No learner state found, starting from defaults")
                await self._persist()
            if self._learning_rate_override is not None:
                self._state.learning_rate = self._learning_rate_override
        return self.state

    @property
    def state(self) -> LearnerState:
        """Deep copy of the current state."""
        return self._state.model_copy(deep=True)

    @property
    def weights(self) -> dict[str, float]:
        return dict(self._state.weights)

    def predict_boost(self, features: FeatureVector) -> int:
        """Linear boost: round(10 * sum(weight * feature))."""
        weights = self._state.weights
        total = 0.0
        for key, field_name in WEIGHT_FEATURES.items():
            total += weights.get(key, 0.0) * getattr(features, field_name)
        total += weights.get(MANIPULATION_WEIGHT, 0.0) * features.manipulation
        return round_half_up(total * BOOST_SCALE)

    async def record_outcome(self, features: FeatureVector, outcome: int) -> LearnerState:
        """Apply one perceptron update and persist the state.

        The manipulation weight moves with the negated error so it
        trends negative as manipulated signals lose.

        Args:
            features: FeatureVector captured when the signal was scored
            outcome: 1 for a win, 0 for a loss

        Returns:
            Copy of the updated state
        """
        if outcome not in (0, 1):
            raise ValueError(f"outcome must be 0 or 1, got {outcome!r}")

        async with self._lock:
            prediction = 1 if self.predict_boost(features) > 0 else 0
            error = outcome - prediction
            rate = self._state.learning_rate
            weights = self._state.weights

            for key, field_name in WEIGHT_FEATURES.items():
                x = getattr(features, field_name)
                weights[key] = weights.get(key, 0.0) + rate * error * x

            xm = features.manipulation
            weights[MANIPULATION_WEIGHT] = (
                weights.get(MANIPULATION_WEIGHT, 0.0) + rate * (-error) * xm
            )

            if outcome == 1:
                self._state.stats.wins += 1
            else:
                self._state.stats.losses += 1

            await self._persist()
            return self.state

    async def _persist(self) -> None:
        """Write the state through the store. Caller holds the lock."""
        if self._store is None:
            return
        try:
            ok = await self._store.save(self._state.model_copy(deep=True))
            if not ok:
                logger.warning("Learner state was not persisted")
        except Exception as e:
            logger.warning(f"Learner state save failed: {e}")
