"""Collaborator protocols for signal persistence and publishing.

Any storage backend (SQL database, in-memory, ...) can implement
SignalStore; any transport (WebSocket broadcast, log sink, ...) can
implement EventPublisher.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sniper.models import Event, Signal, SignalResult


@runtime_checkable
class SignalStore(Protocol):
    """Protocol that signal storage backends must implement."""

    async def insert(self, signal: Signal) -> int:
        """Persist a new signal and return its id."""
        ...

    async def update(self, signal_id: int, result: SignalResult) -> bool:
        """Set the result of a pending signal. Returns False if nothing changed."""
        ...

    async def list_unresolved(self, limit: int = 200) -> list[Signal]:
        """Most recent signals that are still PENDING, newest first."""
        ...

    async def list_recent(self, limit: int = 200) -> list[Signal]:
        """Most recent signals regardless of result, newest first."""
        ...

    async def clear(self) -> None:
        """Delete every stored signal."""
        ...


@runtime_checkable
class EventPublisher(Protocol):
    """Sink for signal, signal_result and log events."""

    async def publish(self, event: Event) -> None:
        ...
