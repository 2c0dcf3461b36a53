"""Signal repository backed by the SQL database."""

from sqlalchemy import delete, select, update

from sniper.models import (
    Direction,
    FeatureVector,
    Signal,
    SignalResult,
)
from sniper_service.storage.database import Database, SignalTable, get_database


class SignalRepository:
    """Repository for signal data operations (implements SignalStore)."""

    def __init__(self, database: Database | None = None):
        self._database = database

    @property
    def database(self) -> Database:
        return self._database or get_database()

    async def insert(self, signal: Signal) -> int:
        """Save a new signal record and return its id."""
        async with self.database.session() as session:
            row = SignalTable(
                symbol=signal.symbol,
                market=signal.market,
                direction=signal.direction.value,
                entry=signal.entry,
                entry_low=signal.entry_low,
                entry_high=signal.entry_high,
                confidence=signal.confidence,
                multiplier_flag=signal.multiplier_flag,
                notes=signal.notes,
                features=signal.features.model_dump(),
                created_at=signal.created_at,
                expiry_at=signal.expiry_at,
                result=signal.result.value,
            )
            session.add(row)
            await session.flush()
            return row.id

    async def update(self, signal_id: int, result: SignalResult) -> bool:
        """Set the result of a pending signal.

        Only PENDING rows are touched, so a signal is never resolved twice.
        """
        async with self.database.session() as session:
            stmt = (
                update(SignalTable)
                .where(
                    SignalTable.id == signal_id,
                    SignalTable.result == SignalResult.PENDING.value,
                )
                .values(result=result.value)
            )
            outcome = await session.execute(stmt)
            return outcome.rowcount > 0

    async def list_unresolved(self, limit: int = 200) -> list[Signal]:
        """Get recent PENDING signals, newest first."""
        async with self.database.session() as session:
            stmt = (
                select(SignalTable)
                .where(SignalTable.result == SignalResult.PENDING.value)
                .order_by(SignalTable.created_at.desc(), SignalTable.id.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [self._row_to_signal(row) for row in result.scalars().all()]

    async def list_recent(self, limit: int = 200) -> list[Signal]:
        """Get recent signals, newest first."""
        async with self.database.session() as session:
            stmt = (
                select(SignalTable)
                .order_by(SignalTable.created_at.desc(), SignalTable.id.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [self._row_to_signal(row) for row in result.scalars().all()]

    async def get_by_id(self, signal_id: int) -> Signal | None:
        """Get a signal by ID."""
        async with self.database.session() as session:
            stmt = select(SignalTable).where(SignalTable.id == signal_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return self._row_to_signal(row)

    async def clear(self) -> None:
        """Delete all signals."""
        async with self.database.session() as session:
            await session.execute(delete(SignalTable))

    @staticmethod
    def _row_to_signal(row: SignalTable) -> Signal:
        """Convert database row to Signal."""
        return Signal(
            id=row.id,
            symbol=row.symbol,
            market=row.market,
            direction=Direction(row.direction),
            entry=row.entry,
            entry_low=row.entry_low,
            entry_high=row.entry_high,
            confidence=row.confidence,
            multiplier_flag=bool(row.multiplier_flag),
            notes=row.notes or "",
            features=FeatureVector(**(row.features or {})),
            created_at=row.created_at,
            expiry_at=row.expiry_at,
            result=SignalResult(row.result),
        )
