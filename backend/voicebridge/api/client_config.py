"""
Client config endpoint - tells the widget where the HTTP and WebSocket APIs live.
"""

from fastapi import APIRouter, Depends, Request

from ..config import Settings
from .dependencies import get_app_settings

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/config")
async def get_client_config(request: Request, config: Settings = Depends(get_app_settings)):
    """HTTP_BASE_URL / WS_BASE_URL when set, otherwise derived from the request."""
    scheme = request.url.scheme or "http"
    host = request.headers.get("host") or request.url.netloc
    http_base = config.http_base_url or f"{scheme}://{host}"
    ws_scheme = "wss" if scheme == "https" else "ws"
    ws_base = config.ws_base_url or f"{ws_scheme}://{host}"
    return {
        "httpBase": http_base.rstrip("/"),
        "wsBase": ws_base.rstrip("/"),
        "wsPath": config.ws_path,
    }
