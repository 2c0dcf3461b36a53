"""Online learner state model."""

from pydantic import BaseModel, Field

# Weight key -> FeatureVector field
WEIGHT_FEATURES: dict[str, str] = {
    "bos": "break_of_structure",
    "fvg": "fair_value_gap",
    "volume": "volume_spike",
    "wick": "wick_bias",
    "round": "round_number",
}
MANIPULATION_WEIGHT = "manipulation_penalty"

DEFAULT_LEARNING_RATE = 0.05


def default_weights() -> dict[str, float]:
    weights = {key: 0.0 for key in WEIGHT_FEATURES}
    weights[MANIPULATION_WEIGHT] = 0.0
    return weights


class LearnerStats(BaseModel):
    """Win/loss counters."""

    wins: int = 0
    losses: int = 0

    @property
    def win_rate(self) -> float:
        """Calculate win rate."""
        total = self.wins + self.losses
        if total == 0:
            return 0.0
        return self.wins / total


class LearnerState(BaseModel):
    """Persisted learner record: weights, learning rate and stats."""

    version: int = 1
    weights: dict[str, float] = Field(default_factory=default_weights)
    learning_rate: float = Field(default=DEFAULT_LEARNING_RATE, gt=0)
    stats: LearnerStats = Field(default_factory=LearnerStats)

    def model_post_init(self, __context) -> None:
        """Fill in any weight keys missing from an older record."""
        for key, value in default_weights().items():
            self.weights.setdefault(key, value)
