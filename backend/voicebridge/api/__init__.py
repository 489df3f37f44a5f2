"""API module."""

from .sessions import router as sessions_router
from .tools import router as tools_router
from .client_config import router as config_router
from .realtime import router as realtime_router

__all__ = ['sessions_router', 'tools_router', 'config_router', 'realtime_router']
