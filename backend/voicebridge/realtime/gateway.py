"""
Realtime Gateway - WebSocket side of a voice session.

Routes each socket to its session, parses client frames, drives the
per-connection state (CONNECTING -> CONNECTED -> DISCONNECTED, or ERROR)
and relays live model events back to the browser.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from ..core.errors import UpstreamError, VoiceBridgeError
from ..core.latency import LatencyTracker
from ..core.logging_config import session_logger
from ..core.session_store import SessionStore
from ..live import LiveModelConnector, extract_function_calls
from ..utils.audio import OUTPUT_MIME_TYPE, encode_base64
from .protocol import (
    ClientFrame,
    ConnectionState,
    audio_frame,
    error_frame,
    function_call_frame,
    interrupt_frame,
    parse_audio_payload,
    parse_client_frame,
    pong_frame,
    status_frame,
    transcription_frame,
)

logger = logging.getLogger(__name__)


@dataclass
class ClientConnection:
    """Routing table entry for one browser socket."""
    session_id: str
    websocket: WebSocket
    state: ConnectionState = ConnectionState.CONNECTING
    closed: bool = False
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    user_transcript: List[str] = field(default_factory=list)
    assistant_transcript: List[str] = field(default_factory=list)


class RealtimeGateway:
    """WebSocket protocol handler for every realtime session of the process."""

    def __init__(
        self,
        store: SessionStore,
        connector: LiveModelConnector,
        latency: Optional[LatencyTracker] = None,
    ):
        self.store = store
        self.connector = connector
        self.latency = latency or LatencyTracker(enabled=False)
        self._clients: Dict[str, ClientConnection] = {}

    def get_client(self, session_id: str) -> Optional[ClientConnection]:
        return self._clients.get(session_id)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def handle_connection(self, websocket: WebSocket, session_id: str) -> None:
        """Serve one accepted socket until it closes, then clean up."""
        log = session_logger(logger, session_id)
        client = ClientConnection(session_id=session_id, websocket=websocket)
        if session_id in self._clients:
            log.warning("Session already had a socket; routing to the new one")
        self._clients[session_id] = client
        self.latency.mark_once(session_id, "ws_connected")
        log.info("Client connected")

        await self.send_to_client(session_id, status_frame(session_id, ConnectionState.CONNECTING))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    await self.send_to_client(session_id, error_frame(session_id, {"message": "Invalid message format"}))
                    continue
                await self.handle_frame(session_id, text)
        except Exception as e:
            log.error(f"WebSocket error: {e}", exc_info=True)
        finally:
            await self.cleanup(session_id, client)
            log.info("Client disconnected")

    async def handle_frame(self, session_id: str, raw: str) -> None:
        """Parse and dispatch one client frame. Never raises."""
        log = session_logger(logger, session_id)
        try:
            frame = parse_client_frame(raw)
            await self._dispatch(session_id, frame)
        except VoiceBridgeError as e:
            log.warning(f"Client frame rejected: {e.message}")
            await self.send_to_client(session_id, error_frame(session_id, e.to_payload()))
        except Exception as e:
            log.error(f"Failed to handle client frame: {e}", exc_info=True)
            await self.send_to_client(session_id, error_frame(session_id, {"message": str(e) or "Internal error"}))

    async def _dispatch(self, session_id: str, frame: ClientFrame) -> None:
        if frame.type == "connect":
            self.latency.mark_once(session_id, "client_connect_msg")
            await self.handle_connect(session_id)
        elif frame.type == "audio":
            self.latency.mark_once(session_id, "first_mic_chunk_in")
            await self.handle_audio(session_id, frame.data)
        elif frame.type == "disconnect":
            await self.handle_disconnect(session_id)
        elif frame.type == "ping":
            await self.send_to_client(session_id, pong_frame(session_id))

    async def handle_connect(self, session_id: str) -> None:
        client = self._clients.get(session_id)
        if client is not None:
            client.state = ConnectionState.CONNECTING
        session = self.store.get(session_id)
        if session is not None:
            self.latency.log(
                session_id, "voice_rag_context",
                has_rag_context=session.rag_context is not None,
                cohort_key=session.rag_context.cohort_key if session.rag_context else None,
            )

        async def on_message(message: Any) -> None:
            await self.relay_model_message(session_id, message)

        async def on_error(error: UpstreamError) -> None:
            await self._on_model_error(session_id, error)

        try:
            await self.connector.connect(session_id, on_message, on_error)
        except VoiceBridgeError as e:
            await self._report_connect_failure(session_id, e.to_payload())
            return
        except Exception as e:
            session_logger(logger, session_id).error(f"Live connect failed: {e}", exc_info=True)
            await self._report_connect_failure(session_id, {"message": str(e) or e.__class__.__name__})
            return

        self.latency.mark_once(session_id, "connect_session_done")
        if client is not None:
            client.state = ConnectionState.CONNECTED
        await self.send_to_client(session_id, status_frame(session_id, ConnectionState.CONNECTED))

    async def _report_connect_failure(self, session_id: str, payload: Dict[str, Any]) -> None:
        client = self._clients.get(session_id)
        if client is not None:
            client.state = ConnectionState.ERROR
        await self.send_to_client(session_id, status_frame(session_id, ConnectionState.ERROR))
        await self.send_to_client(session_id, error_frame(session_id, payload))

    async def _on_model_error(self, session_id: str, error: UpstreamError) -> None:
        session_logger(logger, session_id).error(
            f"Live session error: {error.message}",
            extra={"extra_fields": {"code": error.code, "reason": error.reason, "permanent": error.permanent}}
        )
        client = self._clients.get(session_id)
        if client is not None:
            client.state = ConnectionState.ERROR
        await self.send_to_client(session_id, error_frame(session_id, error.to_payload()))
        await self.send_to_client(session_id, status_frame(session_id, ConnectionState.ERROR))

    async def handle_audio(self, session_id: str, data: Any) -> None:
        audio = parse_audio_payload(data)
        await self.connector.send_audio(session_id, audio.pcm_bytes(), audio.mimeType)

    async def handle_disconnect(self, session_id: str) -> None:
        try:
            await self.connector.disconnect(session_id)
        except Exception as e:
            session_logger(logger, session_id).error(f"Disconnect failed: {e}", exc_info=True)
            return
        client = self._clients.get(session_id)
        if client is not None:
            client.state = ConnectionState.DISCONNECTED
        await self.send_to_client(session_id, status_frame(session_id, ConnectionState.DISCONNECTED))

    async def relay_model_message(self, session_id: str, message: Any) -> None:
        """Translate one LiveServerMessage into outbound frames."""
        for call in extract_function_calls(message):
            await self.send_to_client(session_id, function_call_frame(session_id, call.to_public()))

        content = getattr(message, "server_content", None)
        if content is None:
            return

        model_turn = getattr(content, "model_turn", None)
        for part in (getattr(model_turn, "parts", None) or []):
            inline = getattr(part, "inline_data", None)
            if inline is None or not inline.data:
                continue
            self.latency.mark_once(session_id, "first_audio_out")
            audio_b64 = inline.data if isinstance(inline.data, str) else encode_base64(inline.data)
            await self.send_to_client(session_id, audio_frame(session_id, audio_b64, inline.mime_type or OUTPUT_MIME_TYPE))

        client = self._clients.get(session_id)
        input_transcription = getattr(content, "input_transcription", None)
        if input_transcription is not None and input_transcription.text is not None:
            self.latency.mark_once(session_id, "first_user_transcript")
            if client is not None:
                client.user_transcript.append(input_transcription.text)
            await self.send_to_client(session_id, transcription_frame(session_id, input_transcription.text, True, False))

        output_transcription = getattr(content, "output_transcription", None)
        if output_transcription is not None and output_transcription.text is not None:
            self.latency.mark_once(session_id, "first_assistant_transcript")
            if client is not None:
                client.assistant_transcript.append(output_transcription.text)
            await self.send_to_client(session_id, transcription_frame(session_id, output_transcription.text, False, False))

        if getattr(content, "turn_complete", None):
            if client is not None:
                self._remember_turn(client)
            await self.send_to_client(session_id, transcription_frame(session_id, "", True, True))
            await self.send_to_client(session_id, transcription_frame(session_id, "", False, True))

        if getattr(content, "interrupted", None):
            await self.send_to_client(session_id, interrupt_frame(session_id))

    def _remember_turn(self, client: ClientConnection) -> None:
        user_text = "".join(client.user_transcript).strip()
        assistant_text = "".join(client.assistant_transcript).strip()
        client.user_transcript.clear()
        client.assistant_transcript.clear()
        if user_text:
            self.store.add_to_memory(client.session_id, "user", user_text)
        if assistant_text:
            self.store.add_to_memory(client.session_id, "assistant", assistant_text)

    async def send_to_client(self, session_id: str, frame: Dict[str, Any]) -> bool:
        """Send a frame if the session's socket is still open. Returns False when dropped."""
        client = self._clients.get(session_id)
        if client is None or client.closed:
            return False
        if client.websocket.client_state != WebSocketState.CONNECTED:
            return False
        try:
            async with client.send_lock:
                await client.websocket.send_text(json.dumps(frame, ensure_ascii=False))
        except Exception as e:
            session_logger(logger, session_id).warning(f"Failed to send {frame.get('type')} frame: {e}")
            return False
        return True

    async def cleanup(self, session_id: str, client: Optional[ClientConnection] = None) -> None:
        """Tear down the model connection and routing entry. Safe to call repeatedly."""
        client = client or self._clients.get(session_id)
        if client is None or client.closed:
            return
        client.closed = True
        client.state = ConnectionState.DISCONNECTED

        if self._clients.get(session_id) is not client:
            # a newer socket owns this session now
            return
        del self._clients[session_id]
        try:
            await self.connector.disconnect(session_id)
        except Exception as e:
            session_logger(logger, session_id).error(f"Cleanup disconnect failed: {e}", exc_info=True)
        self.latency.clear(session_id)
