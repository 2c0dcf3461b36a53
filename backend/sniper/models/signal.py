"""Signal, feature vector and outcome models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Direction(str, Enum):
    """Predicted direction of a binary call."""

    CALL = "CALL"
    PUT = "PUT"


class SignalResult(str, Enum):
    """Resolution status of a signal."""

    PENDING = "PENDING"
    WIN = "WIN"
    LOSS = "LOSS"
    UNKNOWN = "UNKNOWN"  # Entry zone could not be parsed


class FeatureVector(BaseModel):
    """Binary features captured at scoring time.

    Stored with the signal and fed back unchanged to the learner
    when the signal resolves.
    """

    model_config = ConfigDict(frozen=True)

    break_of_structure: int = Field(default=0, ge=0, le=1)
    fair_value_gap: int = Field(default=0, ge=0, le=1)
    volume_spike: int = Field(default=0, ge=0, le=1)
    wick_bias: int = Field(default=0, ge=0, le=1)
    round_number: int = Field(default=0, ge=0, le=1)
    manipulation: int = Field(default=0, ge=0, le=1)

    @classmethod
    def from_flags(cls, **flags: bool) -> "FeatureVector":
        """Build from truthy flags, e.g. ``from_flags(break_of_structure=True)``."""
        return cls(**{name: 1 if value else 0 for name, value in flags.items()})


class Signal(BaseModel):
    """Directional call emitted by the scoring engine.

    Everything except `result` is fixed at creation. `id` is assigned
    by the signal store on insert.
    """

    id: int | None = None
    symbol: str
    market: str = "binary"
    direction: Direction
    entry_low: float
    entry_high: float
    entry: str  # Formatted zone, e.g. "99.9000 – 100.1000"
    confidence: int = Field(ge=10, le=99)
    multiplier_flag: bool = False
    notes: str = ""
    features: FeatureVector = Field(default_factory=FeatureVector)
    created_at: datetime
    expiry_at: datetime | None = None
    result: SignalResult = SignalResult.PENDING

    @property
    def is_pending(self) -> bool:
        return self.result == SignalResult.PENDING

    def to_event_data(self) -> dict:
        """Flatten for publishing (JSON friendly)."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "market": self.market,
            "direction": self.direction.value,
            "entry": self.entry,
            "confidence": self.confidence,
            "mtg": self.multiplier_flag,
            "notes": self.notes,
            "features": self.features.model_dump(),
            "time": self.created_at.isoformat(),
            "expiry_at": self.expiry_at.isoformat() if self.expiry_at else None,
            "result": self.result.value,
        }


class Event(BaseModel):
    """Message handed to the publish sink."""

    type: str  # "signal", "signal_result", "log", "info", "error"
    data: dict | str | None = None
    timestamp: datetime
