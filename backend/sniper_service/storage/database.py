"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from sniper_service.config import get_settings

Base = declarative_base()


class SignalTable(Base):
    """Emitted signal records.

    `features` holds the FeatureVector captured at scoring time so the
    resolver can feed the exact same vector back to the learner.
    """

    __tablename__ = "signals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False)
    market = Column(String(20), nullable=False, default="binary")
    direction = Column(String(4), nullable=False)  # CALL | PUT
    entry = Column(String(64), nullable=False)
    entry_low = Column(Float, nullable=False)
    entry_high = Column(Float, nullable=False)
    confidence = Column(Integer, nullable=False)
    multiplier_flag = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, default="")
    features = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expiry_at = Column(DateTime(timezone=True), nullable=True)
    result = Column(String(10), nullable=False, default="PENDING")

    __table_args__ = (
        Index("idx_signals_symbol_time", "symbol", "created_at"),
        Index("idx_signals_result", "result"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        engine_kwargs: dict = {"echo": settings.debug, "pool_pre_ping": True}
        if url.startswith("postgresql+asyncpg://"):
            engine_kwargs.update(
                pool_size=5,
                max_overflow=10,
                pool_recycle=3600,   # Recycle every hour
                pool_timeout=30,
                connect_args={
                    "timeout": 10,          # Connection timeout
                    "command_timeout": 60,  # Query timeout
                },
            )

        self.engine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
