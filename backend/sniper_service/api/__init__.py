"""API endpoints."""

from sniper_service.api.routes import router
from sniper_service.api.websocket import ConnectionManager, manager, websocket_endpoint

__all__ = [
    "router",
    "manager",
    "websocket_endpoint",
    "ConnectionManager",
]
