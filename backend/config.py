"""
Configuration management for the Interactive Avatar backend.
Loads environment variables and provides typed configuration access.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BeforeValidator
from typing import Optional, List, Annotated
from urllib.parse import urlencode
from enum import Enum


def parse_comma_separated(v):
    """Parse comma-separated string into list."""
    if isinstance(v, str):
        return [item.strip() for item in v.split(',') if item.strip()]
    return v


class Environment(str, Enum):
    """Deployment environment types."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class EventTransport(str, Enum):
    """Where talking/turn events are read from."""
    ROOM_DATA = "room_data"        # Data packets on the LiveKit room
    SIDE_CHANNEL = "side_channel"  # streaming.chat WebSocket


DEFAULT_OPENING_TEXT = (
    "Welcome! I'm your Interactive Avatar guide, here to help you explore "
    "the world of real-time interactive avatars. What would you like to know first?"
)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: Annotated[List[str], BeforeValidator(parse_comma_separated)] = [
        "http://localhost:3000",
        "http://localhost:3001"
    ]

    # HeyGen Streaming API
    heygen_api_key: str
    api_base_url: str = "https://api.heygen.com"
    streaming_ws_base_url: str = "wss://api.heygen.com/v1/ws/streaming.chat"

    # Event protocol transport
    event_transport: EventTransport = EventTransport.ROOM_DATA
    data_topic: Optional[str] = None  # Only decode room data on this topic when set

    # Session behaviour
    opening_text: str = DEFAULT_OPENING_TEXT
    settle_delay_seconds: float = 4.0
    stt_language: str = "en"
    session_source: str = "share"
    video_quality: str = "high"
    video_encoding: str = "H264"

    # REST client
    rest_timeout_seconds: float = 30.0
    rest_max_retries: int = 3

    # Session manager limits
    max_sessions: int = 20
    session_timeout_seconds: int = 600  # 10 minutes of inactivity

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()


def get_side_channel_url(
    session_id: str,
    session_token: str,
    opening_text: Optional[str] = None,
    config: Optional[Settings] = None
) -> str:
    """Build the streaming.chat WebSocket URL for a session."""
    config = config or settings
    query = urlencode({
        "session_id": session_id,
        "session_token": session_token,
        "audio_transport": "livekit",
        "arch_version": "v2",
        "stt_language": config.stt_language,
        "silence_response": "false",
        "opening_text": config.opening_text if opening_text is None else opening_text,
    })
    return f"{config.streaming_ws_base_url}?{query}"


def validate_config(config: Optional[Settings] = None):
    """Validate configuration required to talk to the streaming API."""
    config = config or settings
    if not config.heygen_api_key:
        raise ValueError("HeyGen API key not configured")
    if config.settle_delay_seconds < 0:
        raise ValueError("settle_delay_seconds must not be negative")
