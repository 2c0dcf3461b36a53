"""WebSocket endpoint for real-time updates."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from sniper.models import Event

logger = logging.getLogger(__name__)


def _orjson_dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketMessage(BaseModel):
    """WebSocket message format."""

    type: str  # "signal", "signal_result", "log", "info", "error"
    data: dict[str, Any] | str | None = None
    timestamp: datetime

    def to_json(self) -> str:
        """Serialize to JSON string using orjson for performance."""
        return _orjson_dumps(self.model_dump())

    @classmethod
    def from_event(cls, event: Event) -> "WebSocketMessage":
        return cls(type=event.type, data=event.data, timestamp=event.timestamp)


class ConnectionManager:
    """Manage WebSocket connections and broadcasts.

    Also serves as the EventPublisher for the signal service and the
    result resolver.
    """

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    async def broadcast(self, message: WebSocketMessage) -> None:
        """Send to every client concurrently; clients that fail are dropped."""
        async with self._lock:
            targets = list(self._connections)
        if not targets:
            return

        text = message.to_json()
        results = await asyncio.gather(
            *(ws.send_text(text) for ws in targets),
            return_exceptions=True,
        )
        failed = [ws for ws, res in zip(targets, results) if isinstance(res, Exception)]
        if not failed:
            return

        logger.warning(f"Dropping {len(failed)} WebSocket client(s) after send failure")
        async with self._lock:
            self._connections = [ws for ws in self._connections if ws not in failed]

    async def publish(self, event: Event) -> None:
        """Broadcast a pipeline event."""
        await self.broadcast(WebSocketMessage.from_event(event))

    @property
    def connection_count(self) -> int:
        """Get number of active connections."""
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


async def _send(websocket: WebSocket, msg_type: str, data: dict | str | None) -> None:
    await websocket.send_text(
        WebSocketMessage(type=msg_type, data=data, timestamp=_now()).to_json()
    )


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Messages sent to clients:
    - info: Sent on connect, carries server time and watched symbols
    - signal: New signal
    - signal_result: Signal resolved (WIN / LOSS / UNKNOWN)
    - log: Human-readable one-liner per signal
    - error: Request could not be served

    Messages accepted from clients:
    - {"type": "reqSignalNow", "pair": "BTCUSDT", "market": "binary"}
    - {"type": "ping"}
    """
    await manager.connect(websocket)

    try:
        service = getattr(websocket.app.state, "signal_service", None)
        symbols = service.symbols if service else []
        await _send(websocket, "info", {
            "server_time": _now().isoformat(),
            "symbols": symbols,
        })

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=60.0)

                try:
                    message = orjson.loads(data)
                except orjson.JSONDecodeError:
                    await _send(websocket, "error", "Invalid JSON")
                    continue
                if not isinstance(message, dict):
                    await _send(websocket, "error", "Invalid message")
                    continue
                await handle_client_message(websocket, message)

            except asyncio.TimeoutError:
                # Keep connection alive
                await _send(websocket, "ping", {})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)


async def handle_client_message(websocket: WebSocket, message: dict) -> None:
    """Handle incoming message from client."""
    msg_type = message.get("type", "")

    if msg_type == "ping":
        await _send(websocket, "pong", {})
    elif msg_type == "reqSignalNow":
        service = getattr(websocket.app.state, "signal_service", None)
        if service is None:
            await _send(websocket, "error", "Signal service unavailable")
            return

        pair = message.get("pair") or (service.symbols[0] if service.symbols else "")
        market = message.get("market") or service.market
        signal = None
        if pair:
            # Reply only to the requesting client
            signal = await service.request_signal(str(pair), market=market, publish=False)

        if signal is not None:
            await _send(websocket, "signal", signal.to_event_data())
        else:
            await _send(websocket, "error", "No signal ready")
    else:
        await _send(websocket, "error", f"Unknown message type: {msg_type}")
