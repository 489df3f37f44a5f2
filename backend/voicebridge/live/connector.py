"""
Live Model Connector - one Gemini Live connection per voice session.

Translates between the live API's message stream and the gateway's
callbacks, and answers the model's function calls through the tool
call coordinator before the message that carried them is relayed.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from google.genai import types

from ..core.errors import (
    CredentialError,
    NotConnectedError,
    NotFoundError,
    UpstreamError,
    classify_close,
    classify_upstream_error,
)
from ..core.latency import LatencyTracker
from ..core.logging_config import session_logger, truncate_large_data
from ..core.session_store import SessionStore
from ..models.session import RagContext, Session
from ..tools import COHORT_CHAT_TOOL_NAME, ToolCallCoordinator, ToolRegistry, ToolResult
from .connection import LiveConnection
from .events import FunctionCall, LiveClosed, LiveEvent, LiveFailed, LiveMessage, LiveOpened, extract_function_calls
from .prompts import build_system_instruction

logger = logging.getLogger(__name__)

OnMessage = Callable[[Any], Awaitable[None]]
OnError = Callable[[UpstreamError], Awaitable[None]]


class LiveModelConnector:
    """Owns live connections for every session of the process."""

    def __init__(
        self,
        client: Any,
        store: SessionStore,
        coordinator: ToolCallCoordinator,
        registry: ToolRegistry,
        model: str,
        rag_base_url: Optional[str] = None,
        latency: Optional[LatencyTracker] = None,
        log_tools: bool = True,
        rag_tool_name: str = COHORT_CHAT_TOOL_NAME,
    ):
        """
        Args:
            client: google.genai.Client (anything exposing ``aio.live.connect``);
                None when no API key is configured
            store: Session registry; connection handles live on the sessions
            coordinator: Dedupe layer in front of the tool registry
            registry: Tools advertised to the model
            model: Live model name
            rag_base_url: Lowest-priority base URL for the RAG tool
            latency: Per-session latency marks
            log_tools: Log each tool call at INFO
            rag_tool_name: The single tool RAG sessions are restricted to
        """
        self._client = client
        self.store = store
        self.coordinator = coordinator
        self.registry = registry
        self.model = model
        self.rag_base_url = rag_base_url
        self.latency = latency or LatencyTracker(enabled=False)
        self.log_tools = log_tools
        self.rag_tool_name = rag_tool_name
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def build_config(self, rag_context: Optional[RagContext]) -> types.LiveConnectConfig:
        """Audio in/out with transcription both ways; RAG sessions see only the RAG tool."""
        names = [self.rag_tool_name] if rag_context is not None else None
        declarations = self.registry.get_tools_format(names)
        tools = None
        if declarations:
            tools = [types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=decl["name"],
                    description=decl["description"],
                    parameters=decl["parameters"],
                )
                for decl in declarations
            ])]
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            input_audio_transcription=types.AudioTranscriptionConfig(),
            output_audio_transcription=types.AudioTranscriptionConfig(),
            system_instruction=build_system_instruction(rag_context, self.rag_tool_name),
            tools=tools,
        )

    async def connect(self, session_id: str, on_message: OnMessage, on_error: OnError) -> LiveConnection:
        """
        Open the live connection for a session, replacing any existing one.

        Raises:
            NotFoundError: unknown session
            CredentialError: no API key, or the key was rejected
            UpstreamError: handshake failed for any other reason
        """
        async with self._lock(session_id):
            session = self.store.get(session_id)
            if session is None:
                raise NotFoundError("Session not found")
            if self._client is None:
                raise CredentialError("GEMINI_API_KEY is not configured")

            await self._close_existing(session_id)

            log = session_logger(logger, session_id)
            config = self.build_config(session.rag_context)

            async def handle(connection: LiveConnection, event: LiveEvent) -> None:
                await self._handle_event(connection, event, on_message, on_error)

            connection = LiveConnection(session_id, handle)
            self.latency.mark_once(session_id, "gemini_connect_start")
            try:
                await connection.open(self._client.aio.live.connect(model=self.model, config=config))
            except Exception as e:
                error = classify_upstream_error(e)
                log.error(f"Live connect failed: {error.message}", extra={"extra_fields": {"permanent": error.permanent}})
                raise error from e
            self.latency.mark_once(session_id, "gemini_connect_done")

            if not self.store.update(session_id, connection=connection):
                # session was deleted during the handshake
                await connection.close()
                raise NotFoundError("Session not found")
            log.info(f"Live connection established (model={self.model}, rag={session.rag_context is not None})")
            return connection

    async def send_audio(self, session_id: str, data: bytes, mime_type: str) -> None:
        """Forward one realtime audio chunk to the session's open connection."""
        session = self.store.get(session_id)
        connection = session.connection if session is not None else None
        if connection is None or not connection.is_open:
            raise NotConnectedError("Session not found or not connected")
        await connection.send_audio(data, mime_type)

    async def disconnect(self, session_id: str) -> None:
        """Close the session's connection if any. Idempotent."""
        async with self._lock(session_id):
            await self._close_existing(session_id)
        self.latency.clear(session_id)
        if session_id not in self.store:
            self._locks.pop(session_id, None)

    def forget(self, session_id: str) -> None:
        """Drop per-session bookkeeping once the session itself is gone."""
        self._locks.pop(session_id, None)
        self.latency.clear(session_id)

    def release_expired(self, session: Session) -> None:
        """
        Session expiry hook. The session is already out of the store, so
        a connection it still held is closed in a detached task.
        """
        self.forget(session.id)
        connection = session.connection
        if connection is None:
            return
        asyncio.get_running_loop().create_task(self._close_orphan(session.id, connection))

    async def _close_orphan(self, session_id: str, connection: LiveConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning(
                f"Failed to close connection of expired session: {e}",
                extra={"extra_fields": {"session_id": session_id}}
            )

    async def _close_existing(self, session_id: str) -> None:
        session = self.store.get(session_id)
        connection = session.connection if session is not None else None
        if connection is None:
            return
        self.store.update(session_id, connection=None)
        await connection.close()
        logger.info("Live connection closed", extra={"extra_fields": {"session_id": session_id}})

    def _detach(self, connection: LiveConnection) -> None:
        session = self.store.get(connection.session_id)
        if session is not None and session.connection is connection:
            self.store.update(connection.session_id, connection=None)

    async def _handle_event(
        self,
        connection: LiveConnection,
        event: LiveEvent,
        on_message: OnMessage,
        on_error: OnError,
    ) -> None:
        log = session_logger(logger, connection.session_id)
        if isinstance(event, LiveOpened):
            log.info("Gemini session opened")
        elif isinstance(event, LiveMessage):
            if extract_function_calls(event.message):
                # only this message waits for its tool results
                connection.spawn(self._answer_then_relay(connection, event.message, on_message))
            else:
                await on_message(event.message)
        elif isinstance(event, LiveClosed):
            log.info(f"Gemini session closed: code={event.code} reason={event.reason}")
            self._detach(connection)
            await on_error(classify_close(event.code, event.reason))
        elif isinstance(event, LiveFailed):
            log.error(f"Gemini session error: {event.error}", exc_info=event.error)
            self._detach(connection)
            await on_error(classify_upstream_error(event.error))

    async def _answer_then_relay(self, connection: LiveConnection, message: Any, on_message: OnMessage) -> None:
        log = session_logger(logger, connection.session_id)
        try:
            await self._answer_function_calls(connection, message)
        except Exception as e:
            log.error(f"Function call handling failed: {e}", exc_info=True)
        try:
            await on_message(message)
        except Exception as e:
            log.error(f"Relaying function call message failed: {e}", exc_info=True)

    def resolve_tool_args(
        self,
        tool_name: str,
        args: Dict[str, Any],
        rag_context: Optional[RagContext],
    ) -> Dict[str, Any]:
        """
        Effective arguments for a call. For the RAG tool, model-supplied values
        win field by field, then the session's ragContext, then RAG_BASE_URL.
        """
        if tool_name != self.rag_tool_name:
            return dict(args)
        if rag_context is None:
            return {**args, "baseUrl": args.get("baseUrl") or self.rag_base_url}
        return {
            "baseUrl": args.get("baseUrl") or rag_context.base_url or self.rag_base_url,
            "cohortKey": args.get("cohortKey") or rag_context.cohort_key,
            "sessionId": args.get("sessionId") or rag_context.rag_session_id,
            "question": args.get("question") or args.get("query") or args.get("text") or "",
        }

    async def _resolve_call(self, session_id: str, call: FunctionCall, rag_context: Optional[RagContext]) -> ToolResult:
        effective_args = self.resolve_tool_args(call.name, call.args, rag_context)
        if self.log_tools:
            logger.info(
                f"Tool call: {call.name}",
                extra={"extra_fields": {
                    "session_id": session_id,
                    "tool_name": call.name,
                    "call_id": call.call_id,
                    "question": truncate_large_data(str(effective_args.get("question", "")), 200),
                }}
            )
        return await self.coordinator.resolve(session_id, call.name, effective_args)

    async def _answer_function_calls(self, connection: LiveConnection, message: Any) -> None:
        """Resolve every call in the message concurrently and send one batched response."""
        calls = extract_function_calls(message)
        if not calls:
            return
        session_id = connection.session_id
        self.latency.log(session_id, "tool_call_received", count=len(calls))

        session = self.store.get(session_id)
        rag_context = session.rag_context if session is not None else None
        results = await asyncio.gather(*(self._resolve_call(session_id, call, rag_context) for call in calls))

        responses = [
            types.FunctionResponse(id=call.call_id, name=call.name, response=result.to_response())
            for call, result in zip(calls, results)
        ]
        if not connection.is_open:
            logger.info(
                "Live connection closed before tool results were ready; dropping them",
                extra={"extra_fields": {"session_id": session_id, "responses": len(responses)}}
            )
            return
        self.latency.log(session_id, "tool_response_send_start", responses=len(responses))
        try:
            await connection.send_tool_response(responses)
        except Exception as e:
            logger.error(
                f"Failed to send tool response: {e}",
                exc_info=True,
                extra={"extra_fields": {"session_id": session_id, "route": "gemini_tool_response"}}
            )
            return
        self.latency.log(session_id, "tool_response_send_done", responses=len(responses))
