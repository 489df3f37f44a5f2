"""
Session API endpoints - create, inspect and delete voice sessions.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..config import Settings
from ..core.session_store import SessionStore
from ..live import LiveModelConnector
from ..models.session import CreateSessionRequest, RagContext, RagContextPayload
from .dependencies import get_app_settings, get_connector, get_session_store

router = APIRouter(prefix="/api", tags=["sessions"])


def _to_rag_context(payload: Optional[RagContextPayload], default_base_url: Optional[str]) -> Optional[RagContext]:
    """Normalize the widget's ragContext; baseUrl falls back to RAG_BASE_URL."""
    if payload is None:
        return None
    return RagContext(
        base_url=payload.baseUrl or default_base_url or "",
        cohort_key=payload.cohortKey or "",
        rag_session_id=payload.sessionId or payload.ragSessionId or "",
        agent_name=payload.agentName or None,
    )


@router.post("/sessions")
async def create_session(
    payload: Optional[CreateSessionRequest] = None,
    x_user_id: Optional[str] = Header(None),
    store: SessionStore = Depends(get_session_store),
    config: Settings = Depends(get_app_settings),
):
    """
    Create a voice session.

    Args:
        payload: Optional userId and ragContext
        x_user_id: X-User-Id header, used when the body has no userId

    Returns:
        sessionId, createdAt and the normalized ragContext (or null)
    """
    payload = payload or CreateSessionRequest()
    rag_context = _to_rag_context(payload.ragContext, config.rag_base_url)
    session = store.create(user_id=payload.userId or x_user_id, rag_context=rag_context)
    return {
        "sessionId": session.id,
        "createdAt": session.created_at_iso,
        "ragContext": rag_context.to_public() if rag_context else None,
    }


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return {
        "sessionId": session.id,
        "userId": session.user_id,
        "createdAt": session.created_at_iso,
        "expiresAt": session.expires_at_iso,
        "memoryLength": len(session.memory),
        "connected": session.connection is not None and session.connection.is_open,
    }


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    connector: LiveModelConnector = Depends(get_connector),
):
    """Close the session's live connection, then delete the session."""
    if session_id not in store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    await connector.disconnect(session_id)
    removed = store.delete(session_id)
    connector.forget(session_id)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return {"success": True}
