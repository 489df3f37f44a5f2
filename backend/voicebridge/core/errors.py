"""
Error taxonomy for the realtime voice backend.

Every error that reaches the WebSocket gateway is converted into an
``error`` frame via ``to_payload()``; none of them is allowed to escape
the per-connection receive loop.
"""

from typing import Any, Dict, Optional, Union

# Close reasons from the live API that mean the key itself is unusable.
CREDENTIAL_REASON_MARKERS = ("leaked", "api key", "api_key", "invalid")

# HTTP-ish status codes the SDK reports for rejected credentials.
CREDENTIAL_STATUS_CODES = (401, 403)


class VoiceBridgeError(Exception):
    """Base class for all application errors."""

    def __init__(
        self,
        message: str,
        code: Optional[Union[int, str]] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.reason = reason

    def to_payload(self) -> Dict[str, Any]:
        """Data for an outbound ``error`` frame."""
        payload: Dict[str, Any] = {"message": self.message}
        if self.code is not None:
            payload["code"] = self.code
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(VoiceBridgeError):
    """Malformed client frame; reported to the client, connection stays open."""


class NotFoundError(VoiceBridgeError):
    """Unknown session id."""


class NotConnectedError(VoiceBridgeError):
    """Operation requires an open live model connection."""


class UpstreamError(VoiceBridgeError):
    """Live model or tool backend failure."""

    permanent = False


class CredentialError(UpstreamError):
    """The live API rejected the API key. Never retried."""

    permanent = True


class ToolExecutionError(VoiceBridgeError):
    """Raised by tool handlers; the registry turns it into an error result."""


def is_credential_reason(reason: Optional[str]) -> bool:
    """Return True if a close reason points at a bad or leaked API key."""
    if not reason:
        return False
    lowered = reason.lower()
    return any(marker in lowered for marker in CREDENTIAL_REASON_MARKERS)


def classify_close(code: Optional[int], reason: Optional[str]) -> UpstreamError:
    """Build the error surfaced when the live connection closes remotely."""
    if is_credential_reason(reason):
        return CredentialError(f"API Key Error: {reason}", code=code, reason=reason)
    detail = reason or "connection closed"
    return UpstreamError(f"Live model connection closed: {detail}", code=code, reason=reason)


def classify_upstream_error(exc: BaseException) -> UpstreamError:
    """Map an SDK/transport exception onto CredentialError or a transient UpstreamError."""
    if isinstance(exc, UpstreamError):
        return exc

    code = getattr(exc, "code", None)
    reason = getattr(exc, "reason", None)
    # websockets.ConnectionClosed carries the peer's close frame in ``rcvd``
    rcvd = getattr(exc, "rcvd", None)
    if rcvd is not None:
        code = getattr(rcvd, "code", code)
        reason = getattr(rcvd, "reason", reason)

    message = str(exc) or exc.__class__.__name__
    # "invalid" alone is too broad for free-form exception text
    key_in_message = any(marker in message.lower() for marker in ("leaked", "api key", "api_key"))
    if code in CREDENTIAL_STATUS_CODES or is_credential_reason(reason) or key_in_message:
        return CredentialError(f"API Key Error: {reason or message}", code=code, reason=reason or message)
    return UpstreamError(message, code=code, reason=reason if isinstance(reason, str) else None)
