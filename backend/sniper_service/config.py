"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sniper.models import ScoringConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Signal storage ("database" uses database_url, "memory" keeps signals in-process)
    signal_store: Literal["database", "memory"] = "database"
    database_url: str = "postgresql://localhost/sniper_signals"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Watched symbols
    watch_symbols: list[str] = ["BTCUSDT", "EURUSD", "USDJPY"]
    default_market: str = "binary"

    # Bar store
    history_max: int = 7200  # 1s bars per symbol (~2 hours)
    tick_window: int = 256

    # Scoring
    min_bars: int = 40
    expiry_seconds: int = 60
    high_denomination_markers: list[str] = ["BTC"]
    multiplier_min_confidence: int = 75

    # Loops (seconds)
    signal_interval: float = 5.0
    check_interval: float = 5.0
    resolver_batch_limit: int = 200

    # Online learner
    learning_rate: float | None = Field(default=None, gt=0)  # overrides the persisted rate when set
    learner_backend: Literal["file", "redis"] = "file"
    learner_state_path: str = "ai_learner.json"
    learner_redis_key: str = "learner:state"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    def scoring_config(self) -> ScoringConfig:
        """Build the scoring engine configuration."""
        return ScoringConfig(
            min_bars=self.min_bars,
            expiry_seconds=self.expiry_seconds,
            high_denomination_markers=self.high_denomination_markers,
            multiplier_min_confidence=self.multiplier_min_confidence,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
