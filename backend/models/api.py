"""
Wire schemas for the HeyGen streaming REST API.

Field names are the snake_case keys used on the wire.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

# The streaming API reports success as 100 on some endpoints and 200 on others
SUCCESS_CODES = frozenset({100, 200})


class VoiceSetting(BaseModel):
    voice_id: Optional[str] = None


class NewSessionRequest(BaseModel):
    """Body of POST /v1/realtime.new."""
    avatar_name: str
    share_code: Optional[str] = None
    knowledge_base_id: str
    voice: Optional[VoiceSetting] = None
    version: str = "v2"
    wait_list: bool = False
    video_encoding: str = "H264"
    quality: str = "high"
    source: str = "share"
    language: str = "en"
    ia_is_livekit_transport: bool = True


class NewSessionData(BaseModel):
    """`data` block of the realtime.new response."""
    session_id: str
    sdp: Optional[str] = None
    access_token: str
    url: str
    is_paid: bool
    session_duration_limit: int
    realtime_endpoint: Optional[str] = None


class StreamingToken(BaseModel):
    token: str


class ApiResponse(BaseModel):
    """Envelope shared by every streaming endpoint."""
    code: Optional[int] = None
    msg: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        # Envelopes without a code (create_token) are judged by HTTP status only
        return self.code is None or self.code in SUCCESS_CODES

    @property
    def error_text(self) -> str:
        return self.msg or self.message or f"code {self.code}"


class ApiDataResponse(ApiResponse, Generic[T]):
    """Envelope with a typed `data` payload."""
    data: Optional[T] = Field(default=None)
