"""
In-memory registry of active realtime sessions with TTL expiry.

Expiry runs two ways: a per-session timer scheduled on the event loop,
and a periodic sweep (``run_sweeper``) that catches anything the timers
missed, e.g. sessions created before a loop was running.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from ..models.session import MemoryEntry, RagContext, Session

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"id", "created_at", "timeout_seconds", "rag_context"})


class SessionStore:
    """Owns every Session of the process. One instance per application."""

    def __init__(
        self,
        timeout_seconds: float = 30 * 60,
        memory_max_length: int = 10,
        clock: Callable[[], float] = time.time,
        on_expire: Optional[Callable[[Session], None]] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.memory_max_length = memory_max_length
        self._clock = clock
        self._on_expire = on_expire
        self._sessions: Dict[str, Session] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, user_id: Optional[str] = None, rag_context: Optional[RagContext] = None) -> Session:
        """Create a session with a fresh id and schedule its expiry."""
        session = Session(
            id=uuid.uuid4().hex,
            created_at=self._clock(),
            timeout_seconds=self.timeout_seconds,
            user_id=user_id,
            rag_context=rag_context,
        )
        self._sessions[session.id] = session
        self._schedule_expiry(session.id)
        logger.info(
            "Session created",
            extra={"extra_fields": {
                "session_id": session.id,
                "user_id": user_id,
                "has_rag_context": rag_context is not None,
            }}
        )
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def all(self) -> List[Session]:
        return list(self._sessions.values())

    def update(self, session_id: str, **fields) -> bool:
        """Merge fields into a session. Returns False for an unknown id."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        for name, value in fields.items():
            if name in IMMUTABLE_FIELDS:
                raise ValueError(f"Session field '{name}' is immutable")
            if not hasattr(session, name):
                raise ValueError(f"Unknown session field '{name}'")
            setattr(session, name, value)
        return True

    def add_to_memory(self, session_id: str, role: str, content: str) -> bool:
        """Append a turn, evicting the oldest entries past memory_max_length."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.memory.append(MemoryEntry(role=role, content=content))
        if len(session.memory) > self.memory_max_length:
            del session.memory[:-self.memory_max_length]
        return True

    def delete(self, session_id: str) -> bool:
        """Cancel the expiry timer and drop the session."""
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()
        removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("Session deleted", extra={"extra_fields": {"session_id": session_id}})
        return removed is not None

    def sweep_expired(self) -> int:
        """Delete every session whose age reached the TTL. Returns the count removed."""
        now = self._clock()
        expired = [s for s in self._sessions.values() if s.age(now) >= self.timeout_seconds]
        for session in expired:
            self._expire(session.id)
        if expired:
            logger.info(f"Swept {len(expired)} expired session(s)")
        return len(expired)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep on a fixed interval until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def close(self) -> None:
        """Cancel all pending expiry timers (application shutdown)."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def _schedule_expiry(self, session_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the periodic sweep covers this session.
            return
        existing = self._timers.pop(session_id, None)
        if existing is not None:
            existing.cancel()
        self._timers[session_id] = loop.call_later(self.timeout_seconds, self._expire, session_id)

    def _expire(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        self.delete(session_id)
        logger.info("Session expired", extra={"extra_fields": {"session_id": session_id}})
        if self._on_expire is not None:
            try:
                self._on_expire(session)
            except Exception as e:
                logger.error(f"Session expiry hook failed: {e}", exc_info=True)
