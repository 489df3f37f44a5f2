"""
Realtime WebSocket endpoint - ws(s)://<host>/ws?sessionId=<id>
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, status

from ..core.session_store import SessionStore
from ..realtime import RealtimeGateway
from .dependencies import get_ws_gateway, get_ws_session_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    store: SessionStore = Depends(get_ws_session_store),
    gateway: RealtimeGateway = Depends(get_ws_gateway),
):
    """
    Stream one voice session. Without ``sessionId`` a new session is created;
    an unknown ``sessionId`` is rejected with a policy-violation close.
    """
    await websocket.accept()
    if not session_id:
        session_id = store.create().id
    elif store.get(session_id) is None:
        # closing before accept() would fail the handshake with HTTP 403
        logger.warning("WebSocket rejected: unknown session", extra={"extra_fields": {"session_id": session_id}})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Session not found")
        return

    logger.info("WebSocket accepted", extra={"extra_fields": {"session_id": session_id}})
    await gateway.handle_connection(websocket, session_id)
