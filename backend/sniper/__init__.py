"""Core tick-to-signal pipeline.

This package contains pure business logic with no database, Redis or
network access: bar storage and aggregation, structure detectors,
manipulation heuristics, scoring and the online learner. The live
service (sniper_service) wires it to storage, loops and the API.
"""

from sniper.aggregator import TIMEFRAME_SECONDS, aggregate, aggregate_timeframe
from sniper.bar_store import BarStore
from sniper.learner import LearnerStateStore, OnlineLearner
from sniper.manipulation import ManipulationReport, analyze_ticks
from sniper.protocols import EventPublisher, SignalStore
from sniper.scoring import ScoringEngine

__all__ = [
    "TIMEFRAME_SECONDS",
    "aggregate",
    "aggregate_timeframe",
    "BarStore",
    "LearnerStateStore",
    "OnlineLearner",
    "ManipulationReport",
    "analyze_ticks",
    "EventPublisher",
    "SignalStore",
    "ScoringEngine",
]
