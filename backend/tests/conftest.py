"""
Shared test fixtures and configuration.
"""

import asyncio
import os
from types import SimpleNamespace

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_API_REQUESTS", "false")
os.environ["GEMINI_API_KEY"] = ""
os.environ["RAG_BASE_URL"] = ""

# Ends one receive() turn of a FakeLiveSession.
TURN_END = object()


class FakeLiveSession:
    """Stands in for google.genai's AsyncSession."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent_audio = []
        self.tool_responses = []

    async def send_realtime_input(self, audio=None, **kwargs):
        self.sent_audio.append(audio)

    async def send_tool_response(self, function_responses=None):
        self.tool_responses.append(list(function_responses or []))

    def push(self, *items):
        for item in items:
            self.incoming.put_nowait(item)

    async def receive(self):
        while True:
            item = await self.incoming.get()
            if item is TURN_END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class FakeConnectContext:
    def __init__(self, session, error=None):
        self.session = session
        self.error = error
        self.exited = False

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        self.exited = True
        return False


class FakeLiveClient:
    """Exposes ``aio.live.connect(model=, config=)`` like google.genai.Client."""

    def __init__(self, connect_error=None):
        self.connect_error = connect_error
        self.calls = []
        self.contexts = []
        self.aio = SimpleNamespace(live=SimpleNamespace(connect=self.connect))

    def connect(self, model, config):
        self.calls.append({"model": model, "config": config})
        context = FakeConnectContext(FakeLiveSession(), error=self.connect_error)
        self.contexts.append(context)
        return context

    @property
    def sessions(self):
        return [c.session for c in self.contexts]


async def wait_until(predicate, timeout=2.0):
    """Yield to the loop until ``predicate()`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def tool_call_message(*calls):
    """A LiveServerMessage-shaped object carrying function calls."""
    function_calls = [SimpleNamespace(id=call_id, name=name, args=args) for call_id, name, args in calls]
    return SimpleNamespace(tool_call=SimpleNamespace(function_calls=function_calls), server_content=None)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_live_client():
    return FakeLiveClient()
