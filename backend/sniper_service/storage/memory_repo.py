"""In-memory signal repository.

Implements the same SignalStore protocol as the SQL repository. Used
when no database is configured and by the test-suite.
"""

import asyncio

from sniper.models import Signal, SignalResult


class InMemorySignalRepository:
    """Dict-backed signal store with auto-incrementing ids."""

    def __init__(self):
        self._rows: dict[int, Signal] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def insert(self, signal: Signal) -> int:
        async with self._lock:
            signal_id = self._next_id
            self._next_id += 1
            self._rows[signal_id] = signal.model_copy(update={"id": signal_id}, deep=True)
            return signal_id

    async def update(self, signal_id: int, result: SignalResult) -> bool:
        """Set the result of a pending signal; resolved rows are left alone."""
        async with self._lock:
            row = self._rows.get(signal_id)
            if row is None or row.result != SignalResult.PENDING:
                return False
            self._rows[signal_id] = row.model_copy(update={"result": result})
            return True

    async def list_unresolved(self, limit: int = 200) -> list[Signal]:
        async with self._lock:
            rows = [r for r in self._newest_first() if r.result == SignalResult.PENDING]
            return [r.model_copy(deep=True) for r in rows[:limit]]

    async def list_recent(self, limit: int = 200) -> list[Signal]:
        async with self._lock:
            return [r.model_copy(deep=True) for r in self._newest_first()[:limit]]

    async def get_by_id(self, signal_id: int) -> Signal | None:
        async with self._lock:
            row = self._rows.get(signal_id)
            return row.model_copy(deep=True) if row else None

    async def clear(self) -> None:
        async with self._lock:
            self._rows.clear()

    def _newest_first(self) -> list[Signal]:
        return sorted(
            self._rows.values(),
            key=lambda s: (s.created_at, s.id or 0),
            reverse=True,
        )

    def __len__(self) -> int:
        return len(self._rows)
