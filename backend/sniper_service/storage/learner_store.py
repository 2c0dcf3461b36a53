"""Learner state persistence backends.

Two backends implement sniper.learner.LearnerStateStore:
- JsonFileLearnerStore: JSON file, rewritten atomically (temp file + rename)
- RedisLearnerStore: a single Redis key, via the cache module

Both return None from `load` when the record is absent or corrupt, so
the learner falls back to its defaults.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

import orjson
from pydantic import ValidationError

from sniper.models import LearnerState
from sniper_service.storage import cache

logger = logging.getLogger(__name__)


class JsonFileLearnerStore:
    """Persist learner state as pretty-printed JSON on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> LearnerState | None:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, state: LearnerState) -> bool:
        return await asyncio.to_thread(self._save_sync, state)

    def _load_sync(self) -> LearnerState | None:
        if not self.path.exists():
            return None
        try:
            data = orjson.loads(self.path.read_bytes())
            return LearnerState.model_validate(data)
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Corrupt learner state at {self.path}: {e}")
            return None

    def _save_sync(self, state: LearnerState) -> bool:
        payload = orjson.dumps(state.model_dump(), option=orjson.OPT_INDENT_2)
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            return True
        except OSError as e:
            logger.warning(f"Failed to write learner state to {self.path}: {e}")
            return False


class RedisLearnerStore:
    """Persist learner state under one Redis key."""

    def __init__(self, key: str = "learner:state"):
        self.key = key

    async def load(self) -> LearnerState | None:
        if not cache.is_cache_available():
            return None

        data = await cache.get_json(self.key)
        if data is None:
            return None
        try:
            return LearnerState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Corrupt learner state in cache key {self.key}: {e}")
            return None

    async def save(self, state: LearnerState) -> bool:
        # Redis may have been unreachable at startup
        if not cache.is_cache_available() and not await cache.init_cache():
            return False
        return await cache.set_json(self.key, state.model_dump())
