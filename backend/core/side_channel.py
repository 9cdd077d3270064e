"""
Side channel capability boundary.

Full-duplex connection to the streaming.chat endpoint. Inbound frames and
the close event are delivered to one listener, in arrival order.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from pydantic import BaseModel, ConfigDict


class SideChannelMessage(BaseModel):
    model_config = ConfigDict(frozen=True)
    data: bytes


class SideChannelClosed(BaseModel):
    model_config = ConfigDict(frozen=True)
    close_code: Optional[str] = None
    was_cancelled: bool = False
    reason: Optional[str] = None


SideChannelNotification = Union[SideChannelMessage, SideChannelClosed]

SideChannelListener = Callable[[SideChannelNotification], None]


class SideChannel(ABC):
    """Event stream connection opened after the handshake."""

    def __init__(self):
        self._listener: Optional[SideChannelListener] = None

    def set_listener(self, listener: Optional[SideChannelListener]):
        self._listener = listener

    def notify(self, notification: SideChannelNotification):
        if self._listener:
            self._listener(notification)

    @abstractmethod
    async def connect(self, url: str):
        """Open the connection. Suspends until open; raises on failure."""

    @abstractmethod
    async def close(self):
        """Close the connection. Best-effort; never raises."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the connection is currently open."""
