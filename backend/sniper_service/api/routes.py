"""REST API routes."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from sniper.models import LearnerState

logger = logging.getLogger(__name__)

router = APIRouter()

# Quote currencies that mark a symbol as crypto
_CRYPTO_QUOTES = ("USDT", "USDC", "BUSD")


# Response models
class PairInfo(BaseModel):
    """Watched symbol."""

    symbol: str
    type: str  # "crypto" or "forex"
    bars: int


class PairsResponse(BaseModel):
    """Watched symbols with server time."""

    pairs: list[PairInfo]
    server_time: datetime


class SignalResponse(BaseModel):
    """Signal response model."""

    id: Optional[int] = None
    symbol: str
    market: str
    direction: str
    entry: str
    confidence: int
    mtg: bool
    notes: str
    features: dict[str, int]
    time: datetime
    expiry_at: Optional[datetime] = None
    result: str


class TickIn(BaseModel):
    """Tick ingestion request."""

    symbol: str
    price: float
    quantity: float = 0.0
    timestamp: int  # Unix seconds


class TickIngestResponse(BaseModel):
    """Tick ingestion result."""

    accepted: int
    rejected: int


def _signal_response(signal) -> SignalResponse:
    return SignalResponse(
        id=signal.id,
        symbol=signal.symbol,
        market=signal.market,
        direction=signal.direction.value,
        entry=signal.entry,
        confidence=signal.confidence,
        mtg=signal.multiplier_flag,
        notes=signal.notes,
        features=signal.features.model_dump(),
        time=signal.created_at,
        expiry_at=signal.expiry_at,
        result=signal.result.value,
    )


def _symbol_type(symbol: str) -> str:
    return "crypto" if symbol.endswith(_CRYPTO_QUOTES) else "forex"


@router.get("/pairs", response_model=PairsResponse)
async def get_pairs(request: Request):
    """List watched symbols."""
    service = request.app.state.signal_service
    bar_store = request.app.state.bar_store

    return PairsResponse(
        pairs=[
            PairInfo(symbol=s, type=_symbol_type(s), bars=bar_store.bar_count(s))
            for s in service.symbols
        ],
        server_time=datetime.now(timezone.utc),
    )


@router.get("/signals/history", response_model=list[SignalResponse])
async def get_signal_history(
    request: Request,
    limit: int = Query(200, ge=1, le=1000, description="Maximum signals to return"),
):
    """Get recent signals, newest first."""
    store = request.app.state.signal_store
    signals = await store.list_recent(limit)
    return [_signal_response(s) for s in signals]


@router.post("/signals/{symbol}", response_model=SignalResponse)
async def request_signal(
    request: Request,
    symbol: str,
    market: Optional[str] = Query(None, description="Market label, defaults to configured"),
):
    """Compute, store and publish a signal for a symbol now."""
    service = request.app.state.signal_service
    signal = await service.request_signal(symbol, market=market)
    if signal is None:
        raise HTTPException(status_code=404, detail="No signal ready")
    return _signal_response(signal)


@router.post("/ticks", response_model=TickIngestResponse)
async def ingest_ticks(request: Request, ticks: list[TickIn]):
    """Feed ticks into the bar store."""
    bar_store = request.app.state.bar_store
    accepted = 0
    for tick in ticks:
        if bar_store.append_tick(tick.symbol.upper(), tick.price, tick.quantity, tick.timestamp):
            accepted += 1
    return TickIngestResponse(accepted=accepted, rejected=len(ticks) - accepted)


@router.get("/learner", response_model=LearnerState)
async def get_learner(request: Request):
    """Current learner weights and stats."""
    return request.app.state.learner.state
