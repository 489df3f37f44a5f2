"""Core module - sessions, errors, logging and latency tracking."""

from .errors import (
    VoiceBridgeError, ValidationError, NotFoundError, NotConnectedError,
    UpstreamError, CredentialError, ToolExecutionError,
)
from .latency import LatencyTracker
from .session_store import SessionStore

__all__ = [
    'VoiceBridgeError', 'ValidationError', 'NotFoundError', 'NotConnectedError',
    'UpstreamError', 'CredentialError', 'ToolExecutionError',
    'LatencyTracker', 'SessionStore',
]
