"""Data storage layer."""

from sniper_service.storage.database import Database, get_database, init_database
from sniper_service.storage.signal_repo import SignalRepository
from sniper_service.storage.memory_repo import InMemorySignalRepository
from sniper_service.storage import cache
from sniper_service.storage.learner_store import JsonFileLearnerStore, RedisLearnerStore

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "SignalRepository",
    "InMemorySignalRepository",
    "cache",
    "JsonFileLearnerStore",
    "RedisLearnerStore",
]
