"""
Event vocabulary of one live model connection.

The SDK's receive loop is translated into these events and pushed through
a single queue per connection, so connection state is driven in one place.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class LiveState(str, Enum):
    UNCONNECTED = "UNCONNECTED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass
class LiveOpened:
    pass


@dataclass
class LiveMessage:
    message: Any  # google.genai.types.LiveServerMessage


@dataclass
class LiveClosed:
    code: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class LiveFailed:
    error: BaseException


LiveEvent = Union[LiveOpened, LiveMessage, LiveClosed, LiveFailed]


@dataclass
class FunctionCall:
    """A model-initiated tool invocation."""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    call_id: str = ""

    def to_public(self) -> Dict[str, Any]:
        return {"name": self.name, "args": self.args, "callId": self.call_id}


def extract_function_calls(message: Any) -> List[FunctionCall]:
    """Function calls carried by a LiveServerMessage (``tool_call.function_calls``)."""
    tool_call = getattr(message, "tool_call", None)
    raw_calls = getattr(tool_call, "function_calls", None) or []
    calls = []
    for raw in raw_calls:
        name = getattr(raw, "name", None) or ""
        if not name:
            continue
        call_id = getattr(raw, "id", None) or f"{name}_{int(time.time() * 1000)}"
        calls.append(FunctionCall(name=name, args=dict(getattr(raw, "args", None) or {}), call_id=call_id))
    return calls
