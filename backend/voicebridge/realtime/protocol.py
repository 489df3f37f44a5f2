"""
WebSocket message protocol between the widget and the gateway.

Inbound (client -> server), JSON text frames:
    {"type": "connect"}
    {"type": "audio", "data": {"data": "<base64 PCM16>", "mimeType": "audio/pcm;rate=16000"}}
    {"type": "disconnect"}
    {"type": "ping"}

Outbound (server -> client): status, audio, transcription, function_call,
error, pong. Every outbound frame carries ``sessionId``.
"""

import json
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ValidationError
from ..utils.audio import OUTPUT_MIME_TYPE, decode_base64


class ConnectionState(str, Enum):
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"


class ClientFrame(BaseModel):
    type: Literal["connect", "audio", "disconnect", "ping"]
    data: Optional[Any] = None
    sessionId: Optional[str] = None


class AudioPayload(BaseModel):
    """One realtime microphone chunk."""
    data: str
    mimeType: str

    @field_validator("data")
    @classmethod
    def _non_empty_base64(cls, value: str) -> str:
        if not value:
            raise ValueError("audio data must be a non-empty base64 string")
        decode_base64(value)
        return value

    @field_validator("mimeType")
    @classmethod
    def _audio_mime(cls, value: str) -> str:
        if "audio" not in value:
            raise ValueError("mimeType must be an audio type")
        return value

    def pcm_bytes(self) -> bytes:
        return decode_base64(self.data)


def parse_client_frame(raw: str) -> ClientFrame:
    """Parse a text frame; raises ValidationError for bad JSON or an unknown type."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid message format") from e
    if not isinstance(payload, dict):
        raise ValidationError("Invalid message format")
    try:
        return ClientFrame.model_validate(payload)
    except PydanticValidationError as e:
        message_type = payload.get("type")
        raise ValidationError(f"Unknown message type: {message_type}" if message_type else "Invalid message format") from e


def parse_audio_payload(data: Any) -> AudioPayload:
    if not isinstance(data, dict):
        raise ValidationError("Invalid audio data format")
    try:
        return AudioPayload.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid audio data format") from e


def status_frame(session_id: str, status: ConnectionState) -> Dict[str, Any]:
    return {"type": "status", "data": {"status": status.value}, "sessionId": session_id}


def audio_frame(session_id: str, audio_b64: str, mime_type: str = OUTPUT_MIME_TYPE) -> Dict[str, Any]:
    return {"type": "audio", "data": {"audio": audio_b64, "mimeType": mime_type}, "sessionId": session_id}


def interrupt_frame(session_id: str) -> Dict[str, Any]:
    return {"type": "audio", "data": {"interrupt": True}, "sessionId": session_id}


def transcription_frame(session_id: str, text: str, is_user: bool, is_final: bool) -> Dict[str, Any]:
    return {
        "type": "transcription",
        "data": {"text": text, "isUser": is_user, "isFinal": is_final},
        "sessionId": session_id,
    }


def function_call_frame(session_id: str, call: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "function_call", "data": call, "sessionId": session_id}


def error_frame(session_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "error", "data": payload, "sessionId": session_id}


def pong_frame(session_id: str) -> Dict[str, Any]:
    return {"type": "pong", "sessionId": session_id}
