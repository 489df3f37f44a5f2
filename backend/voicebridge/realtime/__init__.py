"""Realtime module - WebSocket protocol and gateway."""

from .protocol import ConnectionState
from .gateway import ClientConnection, RealtimeGateway

__all__ = ['ConnectionState', 'ClientConnection', 'RealtimeGateway']
