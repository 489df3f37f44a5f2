"""
Dependency providers - resolve the per-application services from app.state.
"""

from fastapi import HTTPException, Request, WebSocket, status

from ..config import Settings, settings
from ..core.session_store import SessionStore
from ..live import LiveModelConnector
from ..realtime import RealtimeGateway
from ..tools import ToolRegistry


def _service(app, name: str):
    service = getattr(app.state, name, None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{name} unavailable")
    return service


def get_session_store(request: Request) -> SessionStore:
    return _service(request.app, "session_store")


def get_tool_registry(request: Request) -> ToolRegistry:
    return _service(request.app, "tool_registry")


def get_connector(request: Request) -> LiveModelConnector:
    return _service(request.app, "connector")


def get_ws_session_store(websocket: WebSocket) -> SessionStore:
    return _service(websocket.app, "session_store")


def get_ws_gateway(websocket: WebSocket) -> RealtimeGateway:
    return _service(websocket.app, "gateway")


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or settings
