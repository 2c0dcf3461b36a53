"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
for _noisy in ("sqlalchemy", "sqlalchemy.engine", "asyncio", "uvicorn.access"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from sniper import (
    BarStore,
    EventPublisher,
    LearnerStateStore,
    OnlineLearner,
    ScoringEngine,
    SignalStore,
)
from sniper_service.api import manager, router, websocket_endpoint
from sniper_service.config import Settings, get_settings
from sniper_service.services import ResultResolver, SignalService
from sniper_service.storage import (
    InMemorySignalRepository,
    JsonFileLearnerStore,
    RedisLearnerStore,
    SignalRepository,
    cache,
    get_database,
    init_database,
)

DB_INIT_TIMEOUT = 30
CACHE_INIT_TIMEOUT = 10

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Everything the running service is made of."""

    bar_store: BarStore
    learner: OnlineLearner
    signal_store: SignalStore
    engine: ScoringEngine
    signal_service: SignalService
    result_resolver: ResultResolver


# Global components (set by lifespan)
components: Components | None = None


def build_learner_store(settings: Settings) -> LearnerStateStore:
    """Pick the learner state backend from settings."""
    if settings.learner_backend == "redis":
        return RedisLearnerStore(key=settings.learner_redis_key)
    return JsonFileLearnerStore(settings.learner_state_path)


async def build_components(
    settings: Settings,
    signal_store: SignalStore,
    publisher: EventPublisher | None,
) -> Components:
    """Create the pipeline and its loops (loops are not started)."""
    bar_store = BarStore(history_max=settings.history_max, tick_window=settings.tick_window)

    learner = OnlineLearner(
        store=build_learner_store(settings),
        learning_rate=settings.learning_rate,
    )
    state = await learner.load()
    logger.info(
        f"Learner ready: {state.stats.wins}W/{state.stats.losses}L, "
        f"lr={state.learning_rate}"
    )

    engine = ScoringEngine(bar_store, learner, config=settings.scoring_config())

    return Components(
        bar_store=bar_store,
        learner=learner,
        signal_store=signal_store,
        engine=engine,
        signal_service=SignalService(
            engine,
            signal_store,
            publisher=publisher,
            symbols=settings.watch_symbols,
            market=settings.default_market,
            interval=settings.signal_interval,
        ),
        result_resolver=ResultResolver(
            signal_store,
            bar_store,
            learner=learner,
            publisher=publisher,
            check_interval=settings.check_interval,
            batch_limit=settings.resolver_batch_limit,
        ),
    )


async def _close_backends(db_open: bool, redis_backend: bool) -> None:
    if redis_backend:
        try:
            await cache.close_cache()
        except Exception as e:
            logger.warning(f"Error closing cache: {e}")
    if db_open:
        try:
            await get_database().close()
            logger.info("Database connections closed")
        except Exception as e:
            logger.warning(f"Error closing database: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global components

    settings = get_settings()
    logger.info(
        f"Starting Sniper signals "
        f"(store={settings.signal_store}, learner={settings.learner_backend})"
    )

    db_open = False
    cache_open = False

    try:
        if settings.signal_store == "database":
            try:
                await asyncio.wait_for(init_database(), timeout=DB_INIT_TIMEOUT)
            except asyncio.TimeoutError:
                raise RuntimeError(f"Database initialization timed out after {DB_INIT_TIMEOUT}s")
            db_open = True
            signal_store: SignalStore = SignalRepository()
        else:
            logger.warning("In-memory signal store: signals are lost on restart")
            signal_store = InMemorySignalRepository()

        if settings.learner_backend == "redis":
            try:
                cache_open = await asyncio.wait_for(cache.init_cache(), timeout=CACHE_INIT_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Redis init timed out")
            if not cache_open:
                logger.warning("Redis unavailable, learner state saves will retry the connection")

        components = await build_components(settings, signal_store, publisher=manager)

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        await _close_backends(db_open, settings.learner_backend == "redis")
        raise  # Re-raise to prevent app from starting in broken state

    # Expose components to API routes via app.state
    app.state.bar_store = components.bar_store
    app.state.learner = components.learner
    app.state.signal_store = components.signal_store
    app.state.signal_service = components.signal_service

    components.signal_service.start()
    components.result_resolver.start()
    logger.info(f"Watching {', '.join(components.signal_service.symbols)}")

    yield

    logger.info("Shutting down...")
    await components.signal_service.stop()
    await components.result_resolver.stop()
    # The learner store may have connected after startup
    await _close_backends(db_open, settings.learner_backend == "redis")
    components = None
    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="Sniper Signals",
    description="Short-horizon directional signals from live ticks",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.websocket("/ws")(websocket_endpoint)


@app.get("/health")
async def health():
    """Liveness plus loop status."""
    running = components is not None
    return {
        "status": "healthy" if running else "starting",
        "connections": manager.connection_count,
        "signal_service": running and components.signal_service.is_running,
        "result_resolver": running and components.result_resolver.is_running,
    }


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sniper_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
