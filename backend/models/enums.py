"""
Enums and constants for the Interactive Avatar backend.
"""

from enum import Enum


class SessionPhase(str, Enum):
    """Controller lifecycle states."""
    IDLE = "idle"
    PREPARING = "preparing"
    MEDIA_CONNECTING = "media_connecting"
    ACTIVE = "active"
    TEARING_DOWN = "tearing_down"
    FAILED = "failed"


class ConnectionStatus(str, Enum):
    """Connection states observed by the UI."""
    IDLE = "idle"
    PREPARING = "preparing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class Speaker(str, Enum):
    """Who authored a transcript turn."""
    AVATAR = "avatar"
    USER = "user"


class StreamingEventType(str, Enum):
    """Discriminant values of the talking/turn event protocol."""
    AVATAR_START_TALKING = "avatar_start_talking"
    AVATAR_STOP_TALKING = "avatar_stop_talking"
    AVATAR_TALKING_MESSAGE = "avatar_talking_message"
    AVATAR_TALKING_END = "avatar_end_message"
    USER_START_TALKING = "user_start"
    USER_STOP_TALKING = "user_stop"
    USER_TALKING_MESSAGE = "user_talking_message"
    USER_TALKING_END = "user_end_message"


class TaskType(str, Enum):
    """streaming.task modes."""
    TALK = "talk"      # Avatar answers the text through its knowledge base
    REPEAT = "repeat"  # Avatar repeats the text verbatim


class InputMode(str, Enum):
    """How the user is talking to the avatar."""
    VOICE = "voice"
    TEXT = "text"


class HandshakeStep(str, Enum):
    """Ordered REST calls that establish a session."""
    CREATE = "create"
    START = "start"
    TOKEN = "token"


class UIMessageType(str, Enum):
    """Messages exchanged with UI clients over the session WebSocket."""
    # Server -> client
    SNAPSHOT = "snapshot"
    ERROR = "error"

    # Client -> server
    SEND = "send"
    STOP = "stop"
    START = "start"
    INPUT_MODE = "input_mode"
