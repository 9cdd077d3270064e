"""
Message schemas for the HTTP API and the UI session WebSocket.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, Any, Literal
from datetime import datetime, timezone
from .enums import UIMessageType, TaskType, InputMode
from .session import AvatarDescriptor, SessionSnapshot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseMessage(BaseModel):
    """Base message structure for server -> client WebSocket traffic."""
    type: UIMessageType
    timestamp: datetime = Field(default_factory=_utcnow)
    session_key: Optional[str] = None


class SnapshotMessage(BaseMessage):
    """Full controller state pushed after every observable change."""
    type: UIMessageType = UIMessageType.SNAPSHOT
    snapshot: SessionSnapshot


class ErrorMessage(BaseMessage):
    """Error envelope."""
    type: UIMessageType = UIMessageType.ERROR
    code: str
    message: str
    recoverable: bool = True
    details: Optional[dict] = None


# Client -> server WebSocket commands

class SendCommand(BaseModel):
    type: Literal["send"] = "send"
    text: str = Field(min_length=1)
    task_type: TaskType = TaskType.TALK


class StopCommand(BaseModel):
    type: Literal["stop"] = "stop"


class StartCommand(BaseModel):
    type: Literal["start"] = "start"


class InputModeCommand(BaseModel):
    type: Literal["input_mode"] = "input_mode"
    mode: InputMode


# HTTP request / response bodies

class SessionCreateRequest(BaseModel):
    """Create a session for a catalog avatar or an inline descriptor."""
    avatar_id: Optional[str] = None
    avatar: Optional[AvatarDescriptor] = None

    @model_validator(mode="after")
    def _exactly_one_avatar(self):
        if (self.avatar_id is None) == (self.avatar is None):
            raise ValueError("Provide exactly one of avatar_id or avatar")
        return self


class SessionCreateResponse(BaseModel):
    session_key: str
    snapshot: SessionSnapshot


class SendMessageRequest(BaseModel):
    text: str = Field(min_length=1)
    task_type: TaskType = TaskType.TALK


class InputModeRequest(BaseModel):
    mode: InputMode


class StatusResponse(BaseModel):
    status: str
    message: Optional[str] = None
    details: Optional[Any] = None
