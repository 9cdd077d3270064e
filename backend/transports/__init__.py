"""
Transport layer for the Interactive Avatar backend.
"""

from .livekit_room import LiveKitRoomAdapter
from .side_channel import WebSocketSideChannel
from .websocket_transport import SessionWebSocketHandler

__all__ = ["LiveKitRoomAdapter", "WebSocketSideChannel", "SessionWebSocketHandler"]
