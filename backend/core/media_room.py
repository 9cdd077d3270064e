"""
Media room capability boundary.

The controller only sees this interface: connect/disconnect, microphone
control, and a feed of notifications. Concrete adapters (LiveKit in
production, fakes in tests) translate their engine's callbacks into the
notification models below.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from models import ConnectionStatus


class RoomNotification(BaseModel):
    model_config = ConfigDict(frozen=True)


class ConnectionStateChanged(RoomNotification):
    """Room connection moved to a new status."""
    status: ConnectionStatus
    close_code: Optional[str] = None
    was_cancelled: bool = False
    error_message: Optional[str] = None


class SpeakingParticipantsChanged(RoomNotification):
    """Set of active speakers changed."""
    speaker_identities: List[str] = []
    local_speaking: bool = False


class TrackPublished(RoomNotification):
    """A participant published a media track."""
    participant_identity: str
    track_sid: str
    kind: str
    is_local: bool = False


class DataReceived(RoomNotification):
    """Data packet delivered on the room's data channel."""
    data: bytes
    topic: Optional[str] = None
    participant_identity: Optional[str] = None


MediaRoomNotification = Union[
    ConnectionStateChanged,
    SpeakingParticipantsChanged,
    TrackPublished,
    DataReceived,
]

RoomListener = Callable[[MediaRoomNotification], None]


class MediaRoom(ABC):
    """Opaque realtime media room the avatar's audio/video is delivered on."""

    def __init__(self):
        self._listener: Optional[RoomListener] = None

    def set_listener(self, listener: Optional[RoomListener]):
        """Register the single consumer of room notifications."""
        self._listener = listener

    def notify(self, notification: MediaRoomNotification):
        if self._listener:
            self._listener(notification)

    @abstractmethod
    async def connect(self, url: str, token: str):
        """Join the room. Suspends until joined; raises on failure or cancellation."""

    @abstractmethod
    async def disconnect(self):
        """Leave the room. Best-effort; never raises."""

    @abstractmethod
    async def set_microphone(self, enabled: bool):
        """Publish (or unpublish) the local microphone track."""

    @property
    @abstractmethod
    def microphone_enabled(self) -> bool:
        """Whether the local microphone track is currently published."""
