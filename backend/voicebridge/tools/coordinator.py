"""
Tool Call Coordinator - collapses identical tool calls within a session.

A model that hears the same question twice in quick succession (or is
re-prompted mid-call) tends to issue the same function call again. The
coordinator guarantees at most one execution per dedupe key at a time,
and serves a short-lived cached result for immediate repeats.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

from .registry import ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

# Arguments that identify the RAG target; compared verbatim.
STRUCTURAL_ARGS = ("cohortKey", "sessionId", "baseUrl")


@dataclass
class CachedResult:
    result: ToolResult
    stored_at: float


@dataclass
class CoordinatorStats:
    executions: int = 0
    cache_hits: int = 0
    inflight_joins: int = 0


def normalize_question(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


class ToolCallCoordinator:
    """Owns the in-flight task map and the result cache for tool calls."""

    def __init__(
        self,
        registry: ToolRegistry,
        ttl_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._inflight: Dict[str, asyncio.Task] = {}
        self._cache: Dict[str, CachedResult] = {}
        self.stats = CoordinatorStats()

    @staticmethod
    def dedupe_key(session_id: str, tool_name: str, args: Dict[str, Any]) -> str:
        """Deterministic fingerprint of a call's semantically relevant arguments."""
        args = args or {}
        fingerprint = {
            "session": session_id,
            "tool": tool_name,
            "question": normalize_question(args.get("question")),
        }
        for name in STRUCTURAL_ARGS:
            fingerprint[name] = str(args.get(name) if args.get(name) is not None else "")
        fingerprint["other"] = {
            k: v for k, v in args.items() if k != "question" and k not in STRUCTURAL_ARGS
        }
        encoded = json.dumps(fingerprint, sort_keys=True, ensure_ascii=False, default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    async def resolve(self, session_id: str, tool_name: str, args: Dict[str, Any]) -> ToolResult:
        """Return a cached, joined, or freshly executed result for this call."""
        key = self.dedupe_key(session_id, tool_name, args)
        self.prune()

        cached = self._cache.get(key)
        if cached is not None and self._clock() - cached.stored_at < self.ttl_seconds:
            self.stats.cache_hits += 1
            logger.debug(
                "Tool dedupe cache hit",
                extra={"extra_fields": {"session_id": session_id, "tool_name": tool_name}}
            )
            return cached.result

        task = self._inflight.get(key)
        if task is not None:
            self.stats.inflight_joins += 1
            logger.debug(
                "Tool dedupe in-flight join",
                extra={"extra_fields": {"session_id": session_id, "tool_name": tool_name}}
            )
        else:
            self.stats.executions += 1
            task = asyncio.create_task(self._execute(key, tool_name, args))
            self._inflight[key] = task

        # shield: a caller going away (client disconnect) must not cancel the
        # execution other callers may be waiting on
        return await asyncio.shield(task)

    async def _execute(self, key: str, tool_name: str, args: Dict[str, Any]) -> ToolResult:
        try:
            result = await self.registry.execute(tool_name, args)
            self._cache[key] = CachedResult(result=result, stored_at=self._clock())
            return result
        finally:
            self._inflight.pop(key, None)

    def prune(self) -> int:
        """Drop cache entries older than the TTL."""
        now = self._clock()
        stale = [k for k, entry in self._cache.items() if now - entry.stored_at >= self.ttl_seconds]
        for k in stale:
            del self._cache[k]
        return len(stale)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    @property
    def cache_size(self) -> int:
        return len(self._cache)
