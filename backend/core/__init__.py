"""
Core components for the Interactive Avatar backend.
"""

from .event_decoder import decode
from .turn_aggregator import (
    TurnAggregator,
    TurnAccumulator,
    TurnEffect,
    NoEffect,
    TurnSealed,
    TalkingSetChanged,
    UserSpeakingChanged,
)
from .handshake import HandshakeClient
from .media_room import (
    MediaRoom,
    MediaRoomNotification,
    ConnectionStateChanged,
    SpeakingParticipantsChanged,
    TrackPublished,
    DataReceived,
)
from .side_channel import SideChannel, SideChannelMessage, SideChannelClosed
from .state_machine import SessionStateMachine
from .controller import AvatarSessionController
from .session_manager import SessionManager, get_session_manager

__all__ = [
    "decode",
    "TurnAggregator",
    "TurnAccumulator",
    "TurnEffect",
    "NoEffect",
    "TurnSealed",
    "TalkingSetChanged",
    "UserSpeakingChanged",
    "HandshakeClient",
    "MediaRoom",
    "MediaRoomNotification",
    "ConnectionStateChanged",
    "SpeakingParticipantsChanged",
    "TrackPublished",
    "DataReceived",
    "SideChannel",
    "SideChannelMessage",
    "SideChannelClosed",
    "SessionStateMachine",
    "AvatarSessionController",
    "SessionManager",
    "get_session_manager",
]
