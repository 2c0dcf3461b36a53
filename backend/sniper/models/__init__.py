"""Data models."""

from sniper.models.bar import Bar, BarSeries, Tick
from sniper.models.signal import (
    Direction,
    Event,
    FeatureVector,
    Signal,
    SignalResult,
)
from sniper.models.learner import (
    DEFAULT_LEARNING_RATE,
    MANIPULATION_WEIGHT,
    WEIGHT_FEATURES,
    LearnerState,
    LearnerStats,
    default_weights,
)
from sniper.models.config import ScoringConfig

__all__ = [
    # Hot path (dataclass)
    "Bar",
    "BarSeries",
    "Tick",
    # Cold path (Pydantic)
    "Direction",
    "Event",
    "FeatureVector",
    "Signal",
    "SignalResult",
    "LearnerState",
    "LearnerStats",
    "ScoringConfig",
    # Learner constants
    "DEFAULT_LEARNING_RATE",
    "MANIPULATION_WEIGHT",
    "WEIGHT_FEATURES",
    "default_weights",
]
