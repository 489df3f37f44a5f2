"""
Session Models - Defines structures for realtime voice sessions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RagContext(BaseModel):
    """Binding of a voice session to one knowledge cohort of the RAG backend."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    base_url: str = Field(default="", alias="baseUrl")
    cohort_key: str = Field(default="", alias="cohortKey")
    rag_session_id: str = Field(default="", alias="ragSessionId")
    agent_name: Optional[str] = Field(default=None, alias="agentName")

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True)


@dataclass
class MemoryEntry:
    """One conversation turn kept in session memory."""
    role: str  # "user" or "assistant"
    content: str


@dataclass
class Session:
    """In-memory state of one realtime conversation."""
    id: str
    created_at: float  # epoch seconds
    timeout_seconds: float
    user_id: Optional[str] = None
    connection: Optional[Any] = None  # LiveConnection while a model connection exists
    memory: List[MemoryEntry] = field(default_factory=list)
    rag_context: Optional[RagContext] = None

    @property
    def expires_at(self) -> float:
        return self.created_at + self.timeout_seconds

    def age(self, now: float) -> float:
        return now - self.created_at

    @property
    def created_at_iso(self) -> str:
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat()

    @property
    def expires_at_iso(self) -> str:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat()


class RagContextPayload(BaseModel):
    """ragContext as sent by the widget; accepts sessionId or ragSessionId."""
    baseUrl: Optional[str] = None
    cohortKey: str = ""
    sessionId: Optional[str] = None
    ragSessionId: Optional[str] = None
    agentName: Optional[str] = None


class CreateSessionRequest(BaseModel):
    """Body of POST /api/sessions."""
    userId: Optional[str] = None
    ragContext: Optional[RagContextPayload] = None
