"""
Per-session latency marks for the voice pipeline.

Enabled with LATENCY_LOG=1. Each mark is logged with the milliseconds
elapsed since the first mark recorded for the same session.
"""

import logging
import time
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


class LatencyTracker:
    """Record first-occurrence timestamps (ms) per session and key."""

    def __init__(self, enabled: bool = False, clock: Callable[[], float] = time.time):
        self.enabled = enabled
        self._clock = clock
        self._marks: Dict[str, Dict[str, float]] = {}

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def mark_once(self, session_id: str, key: str) -> None:
        """Record ``key`` the first time it happens for a session."""
        now = self._now_ms()
        marks = self._marks.setdefault(session_id, {})
        is_first = key not in marks
        if is_first:
            marks[key] = now
        marks.setdefault("start", now)
        if self.enabled and is_first:
            self._emit(session_id, key, now, marks["start"])

    def log(self, session_id: str, key: str, **extra: Any) -> None:
        """Log a latency point every time it happens."""
        if not self.enabled:
            return
        now = self._now_ms()
        marks = self._marks.setdefault(session_id, {})
        marks.setdefault("start", now)
        self._emit(session_id, key, now, marks["start"], extra)

    def marks(self, session_id: str) -> Dict[str, float]:
        return dict(self._marks.get(session_id, {}))

    def clear(self, session_id: str) -> None:
        self._marks.pop(session_id, None)

    def _emit(self, session_id: str, key: str, now: float, start: float, extra: Dict[str, Any] = None) -> None:
        fields = {
            "session_id": session_id,
            "latency_key": key,
            "since_start_ms": round(now - start, 2),
        }
        if extra:
            fields.update(extra)
        logger.info(f"[LATENCY] {key}", extra={"extra_fields": fields})
