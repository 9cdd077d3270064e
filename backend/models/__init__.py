"""
Data models for the Interactive Avatar backend.
"""

from .enums import (
    SessionPhase,
    ConnectionStatus,
    Speaker,
    StreamingEventType,
    TaskType,
    InputMode,
    HandshakeStep,
    UIMessageType,
)

from .events import (
    BaseStreamingEvent,
    AvatarStartTalking,
    AvatarStopTalking,
    AvatarTalkingMessage,
    AvatarTalkingEnd,
    UserStartTalking,
    UserStopTalking,
    UserTalkingMessage,
    UserTalkingEnd,
    StreamingEvent,
)

from .session import (
    AvatarDescriptor,
    SessionCredentials,
    ConnectionState,
    TranscriptTurn,
    SessionSnapshot,
)

from .api import (
    SUCCESS_CODES,
    VoiceSetting,
    NewSessionRequest,
    NewSessionData,
    StreamingToken,
    ApiResponse,
    ApiDataResponse,
)

from .messages import (
    BaseMessage,
    SnapshotMessage,
    ErrorMessage,
    SendCommand,
    StopCommand,
    StartCommand,
    InputModeCommand,
    SessionCreateRequest,
    SessionCreateResponse,
    SendMessageRequest,
    InputModeRequest,
    StatusResponse,
)

from .avatars import AVATAR_CATALOG, get_avatar

__all__ = [
    # Enums
    "SessionPhase",
    "ConnectionStatus",
    "Speaker",
    "StreamingEventType",
    "TaskType",
    "InputMode",
    "HandshakeStep",
    "UIMessageType",

    # Events
    "BaseStreamingEvent",
    "AvatarStartTalking",
    "AvatarStopTalking",
    "AvatarTalkingMessage",
    "AvatarTalkingEnd",
    "UserStartTalking",
    "UserStopTalking",
    "UserTalkingMessage",
    "UserTalkingEnd",
    "StreamingEvent",

    # Session
    "AvatarDescriptor",
    "SessionCredentials",
    "ConnectionState",
    "TranscriptTurn",
    "SessionSnapshot",

    # Streaming API wire schemas
    "SUCCESS_CODES",
    "VoiceSetting",
    "NewSessionRequest",
    "NewSessionData",
    "StreamingToken",
    "ApiResponse",
    "ApiDataResponse",

    # Messages
    "BaseMessage",
    "SnapshotMessage",
    "ErrorMessage",
    "SendCommand",
    "StopCommand",
    "StartCommand",
    "InputModeCommand",
    "SessionCreateRequest",
    "SessionCreateResponse",
    "SendMessageRequest",
    "InputModeRequest",
    "StatusResponse",

    # Catalog
    "AVATAR_CATALOG",
    "get_avatar",
]
