"""
One bidirectional streaming connection to the Gemini Live API.

A pump task reads ``session.receive()`` and turns everything it sees,
including the terminal close or failure, into events on a queue. A
processor task drains that queue in order and hands each event to the
owner's handler. Work that must not hold up the queue, such as answering
tool calls, runs in tasks started with ``spawn`` that the connection
cancels when it closes. State: UNCONNECTED -> CONNECTING -> OPEN -> CLOSED.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set

from google.genai import types
from websockets.exceptions import ConnectionClosed

from ..core.errors import NotConnectedError
from .events import LiveClosed, LiveEvent, LiveFailed, LiveMessage, LiveOpened, LiveState

logger = logging.getLogger(__name__)

EventHandler = Callable[["LiveConnection", LiveEvent], Awaitable[None]]


class LiveConnection:
    """Exclusive owner of one SDK AsyncSession for one voice session."""

    def __init__(self, session_id: str, handler: EventHandler):
        self.session_id = session_id
        self.state = LiveState.UNCONNECTED
        self._handler = handler
        self._events: asyncio.Queue = asyncio.Queue()
        self._context: Optional[Any] = None
        self._session: Optional[Any] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._processor_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self.state == LiveState.OPEN

    async def open(self, context_manager: Any) -> None:
        """Enter ``client.aio.live.connect(...)`` and start the event tasks."""
        self.state = LiveState.CONNECTING
        self._context = context_manager
        try:
            self._session = await context_manager.__aenter__()
        except BaseException:
            self.state = LiveState.CLOSED
            self._context = None
            raise

        self.state = LiveState.OPEN
        self._events.put_nowait(LiveOpened())
        self._processor_task = asyncio.create_task(self._process())
        self._pump_task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        try:
            while True:
                received = 0
                # receive() ends after each turn_complete; loop for the next turn
                async for message in self._session.receive():
                    received += 1
                    await self._events.put(LiveMessage(message))
                if received == 0:
                    await self._events.put(LiveClosed(reason="stream ended"))
                    return
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            rcvd = e.rcvd
            await self._events.put(LiveClosed(
                code=rcvd.code if rcvd is not None else None,
                reason=rcvd.reason if rcvd is not None else None,
            ))
        except Exception as e:
            await self._events.put(LiveFailed(e))

    async def _process(self) -> None:
        while True:
            event = await self._events.get()
            terminal = isinstance(event, (LiveClosed, LiveFailed))
            if terminal:
                self.state = LiveState.CLOSED
            try:
                await self._handler(self, event)
            except Exception as e:
                logger.error(
                    f"Live event handler failed: {e}",
                    exc_info=True,
                    extra={"extra_fields": {"session_id": self.session_id, "event": type(event).__name__}}
                )
            if terminal or self._closing:
                break
        if terminal:
            await self._release()

    def spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        """Run ``coro`` beside the event queue; it is cancelled on close."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def send_audio(self, data: bytes, mime_type: str) -> None:
        if not self.is_open:
            raise NotConnectedError("Live model connection is not open")
        await self._session.send_realtime_input(audio=types.Blob(data=data, mime_type=mime_type))

    async def send_tool_response(self, function_responses: List[types.FunctionResponse]) -> None:
        if not self.is_open:
            raise NotConnectedError("Live model connection is not open")
        await self._session.send_tool_response(function_responses=function_responses)

    async def close(self) -> None:
        """Close the connection. Safe to call repeatedly and from inside the handler."""
        if self._closing:
            return
        self._closing = True
        self.state = LiveState.CLOSED

        current = asyncio.current_task()
        tasks = [t for t in (self._pump_task, self._processor_task) if t is not None and t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._release()

    async def _release(self) -> None:
        self._closing = True
        context, self._context = self._context, None
        if context is None:
            return
        if self._pump_task is not None and self._pump_task is not asyncio.current_task():
            self._pump_task.cancel()
        await self._cancel_spawned()
        try:
            await context.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(
                f"Error while closing live session: {e}",
                extra={"extra_fields": {"session_id": self.session_id}}
            )

    async def _cancel_spawned(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
