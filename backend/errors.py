"""
Error taxonomy for avatar sessions.

Every error sent to a UI client follows the same JSON envelope so the
frontend can render a message and offer a retry.

Error codes
-----------
E_HANDSHAKE_FAILED   create/start/token REST call failed (terminal)
E_CONNECT_FAILED     media room or side channel could not be joined (terminal)
E_TRANSPORT_CLOSED   a live connection closed without being asked to
E_PROTOCOL_DECODE    one side-channel message was malformed (skipped)
E_SEND_FAILED        streaming.task call failed (session stays up)
E_INVALID_STATE      operation not allowed in the current phase
E_REST               REST capability error (wrapped by the above)
"""

import enum
from typing import Any, Optional

from models import HandshakeStep, SessionPhase


class ErrorCode(str, enum.Enum):
    E_HANDSHAKE_FAILED = "E_HANDSHAKE_FAILED"
    E_CONNECT_FAILED = "E_CONNECT_FAILED"
    E_TRANSPORT_CLOSED = "E_TRANSPORT_CLOSED"
    E_PROTOCOL_DECODE = "E_PROTOCOL_DECODE"
    E_SEND_FAILED = "E_SEND_FAILED"
    E_INVALID_STATE = "E_INVALID_STATE"
    E_REST = "E_REST"


class AvatarSessionError(Exception):
    """Base class for all session errors."""

    code: ErrorCode = ErrorCode.E_REST
    recoverable: bool = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "error",
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
        }


class RestError(AvatarSessionError):
    """Non-2xx status, application error code or undecodable body."""

    code = ErrorCode.E_REST

    def __init__(self, endpoint: str, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body


class HandshakeFailed(AvatarSessionError):
    code = ErrorCode.E_HANDSHAKE_FAILED
    recoverable = False

    def __init__(self, step: HandshakeStep, cause: BaseException):
        super().__init__(f"Session {step.value} failed: {cause}")
        self.step = step
        self.cause = cause


class ConnectFailed(AvatarSessionError):
    code = ErrorCode.E_CONNECT_FAILED
    recoverable = False

    def __init__(self, cause: BaseException, target: str = "media room"):
        super().__init__(f"Could not connect to {target}: {cause}")
        self.cause = cause
        self.target = target


class TransportClosed(AvatarSessionError):
    code = ErrorCode.E_TRANSPORT_CLOSED

    def __init__(self, code: Optional[str] = None, was_cancelled: bool = False, reason: Optional[str] = None):
        detail = reason or (f"code {code}" if code is not None else "no reason given")
        super().__init__(f"Connection closed ({detail})")
        self.close_code = code
        self.was_cancelled = was_cancelled


class ProtocolDecodeError(AvatarSessionError):
    """A single inbound event could not be decoded; never terminal."""

    code = ErrorCode.E_PROTOCOL_DECODE
    kind: str = "protocol"


class InvalidPayload(ProtocolDecodeError):
    kind = "invalid_payload"


class MissingField(ProtocolDecodeError):
    kind = "missing_field"

    def __init__(self, field: str, event_type: Optional[str] = None):
        where = f" in {event_type}" if event_type else ""
        super().__init__(f"Missing or invalid field '{field}'{where}")
        self.field = field
        self.event_type = event_type


class UnknownVariant(ProtocolDecodeError):
    kind = "unknown_variant"

    def __init__(self, event_type: str):
        super().__init__(f"Unknown event type '{event_type}'")
        self.event_type = event_type


class SendFailed(AvatarSessionError):
    code = ErrorCode.E_SEND_FAILED

    def __init__(self, cause: BaseException):
        super().__init__(f"Message could not be sent: {cause}")
        self.cause = cause


class InvalidSessionState(AvatarSessionError):
    code = ErrorCode.E_INVALID_STATE

    def __init__(self, operation: str, phase: SessionPhase):
        super().__init__(f"Cannot {operation} while session is {phase.value}")
        self.operation = operation
        self.phase = phase
