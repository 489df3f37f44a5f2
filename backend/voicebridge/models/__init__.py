"""Models module."""

from .session import RagContext, MemoryEntry, Session, RagContextPayload, CreateSessionRequest

__all__ = ['RagContext', 'MemoryEntry', 'Session', 'RagContextPayload', 'CreateSessionRequest']
