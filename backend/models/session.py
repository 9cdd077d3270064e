"""
Session data models: avatar identity, credentials, transcript and the
read-only snapshot published to observers.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, timezone
from .enums import SessionPhase, ConnectionStatus, Speaker, InputMode


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvatarDescriptor(BaseModel):
    """Identity of an avatar to start a session with."""
    model_config = ConfigDict(frozen=True)

    avatar_id: str
    avatar_name: str
    knowledge_base_id: str
    voice_id: Optional[str] = None
    share_code: Optional[str] = None
    source: Optional[str] = None
    preview_image_url: Optional[str] = None


class SessionCredentials(BaseModel):
    """Everything the handshake yields; only ever built complete."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    room_url: str
    room_token: str
    side_channel_token: str
    duration_limit: int
    is_paid: bool
    realtime_endpoint: Optional[str] = None


class ConnectionState(BaseModel):
    """Connection status plus the failure reason when status is FAILED."""
    model_config = ConfigDict(frozen=True)

    status: ConnectionStatus = ConnectionStatus.IDLE
    reason: Optional[str] = None

    @classmethod
    def of(cls, status: ConnectionStatus) -> "ConnectionState":
        return cls(status=status)

    @classmethod
    def failed(cls, reason: str) -> "ConnectionState":
        return cls(status=ConnectionStatus.FAILED, reason=reason)


class TranscriptTurn(BaseModel):
    """One sealed utterance in the conversation transcript."""
    model_config = ConfigDict(frozen=True)

    id: str
    speaker: Speaker
    text: str
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_user_message(self) -> bool:
        return self.speaker == Speaker.USER


class SessionSnapshot(BaseModel):
    """Read-only view of a controller, published on every observable change."""
    session_key: str
    avatar_id: str
    avatar_name: str
    phase: SessionPhase
    connection: ConnectionState
    session_id: Optional[str] = None
    session_duration_limit: Optional[int] = None

    transcript: List[TranscriptTurn] = Field(default_factory=list)
    is_avatar_talking: bool = False
    is_user_talking: bool = False
    show_user_speaking: bool = False
    is_preparing: bool = False
    is_sending: bool = False
    input_mode: InputMode = InputMode.VOICE
    error_message: Optional[str] = None
    has_finished: bool = False

    last_activity: datetime = Field(default_factory=_utcnow)
