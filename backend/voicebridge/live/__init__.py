"""Live module - Gemini Live connections and function-call interception."""

from .events import FunctionCall, LiveState, extract_function_calls
from .connection import LiveConnection
from .connector import LiveModelConnector

__all__ = ['FunctionCall', 'LiveState', 'extract_function_calls', 'LiveConnection', 'LiveModelConnector']
