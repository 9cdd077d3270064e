"""
HeyGen streaming API endpoints.

One coroutine per endpoint; each returns a validated response model or
raises RestError.
"""

from typing import Optional, Type, TypeVar

from pydantic import ValidationError

from config import settings, Settings
from errors import RestError
from models import (
    AvatarDescriptor,
    NewSessionRequest,
    NewSessionData,
    StreamingToken,
    VoiceSetting,
    ApiResponse,
    ApiDataResponse,
    TaskType,
)
from utils import get_logger
from .rest_client import RestClient

logger = get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=ApiResponse)


class StreamingApi:
    """Typed access to the realtime/streaming endpoints."""

    NEW = "/v1/realtime.new"
    START = "/v1/realtime.start"
    CREATE_TOKEN = "/v1/streaming.create_token"
    STOP = "/v1/realtime.stop"
    TASK = "/v1/streaming.task"

    def __init__(self, rest: Optional[RestClient] = None, config: Optional[Settings] = None):
        self.rest = rest or RestClient()
        self.config = config or settings

    def build_session_request(self, avatar: AvatarDescriptor) -> NewSessionRequest:
        """Map an avatar descriptor onto the realtime.new body."""
        return NewSessionRequest(
            avatar_name=avatar.avatar_id,
            share_code=avatar.share_code or None,
            knowledge_base_id=avatar.knowledge_base_id,
            voice=VoiceSetting(voice_id=avatar.voice_id) if avatar.voice_id else None,
            video_encoding=self.config.video_encoding,
            quality=self.config.video_quality,
            source=avatar.source or self.config.session_source,
            language=self.config.stt_language,
        )

    async def new_session(self, avatar: AvatarDescriptor) -> NewSessionData:
        body = self.build_session_request(avatar).model_dump(exclude_none=True)
        response = await self._call(self.NEW, body, ApiDataResponse[NewSessionData])
        if response.data is None:
            raise RestError(self.NEW, "response has no session data", body=response.model_dump())
        logger.info(f"Streaming session created: {response.data.session_id}")
        return response.data

    async def start_session(self, session_id: str) -> ApiResponse:
        return await self._call(self.START, {"session_id": session_id}, ApiResponse)

    async def create_token(self, session_id: str) -> str:
        response = await self._call(
            self.CREATE_TOKEN,
            {"session_id": session_id, "paid": True},
            ApiDataResponse[StreamingToken],
        )
        if response.data is None:
            raise RestError(self.CREATE_TOKEN, "response has no token", body=response.model_dump())
        return response.data.token

    async def stop_session(self, session_id: str) -> ApiResponse:
        return await self._call(self.STOP, {"session_id": session_id}, ApiResponse)

    async def send_task(self, session_id: str, text: str, task_type: TaskType = TaskType.TALK) -> ApiResponse:
        return await self._call(
            self.TASK,
            {"session_id": session_id, "text": text, "task_type": task_type.value},
            ApiResponse,
        )

    async def aclose(self):
        await self.rest.aclose()

    async def _call(self, endpoint: str, payload: dict, model: Type[ResponseT]) -> ResponseT:
        raw = await self.rest.post(endpoint, payload)
        try:
            response = model.model_validate(raw)
        except ValidationError as e:
            raise RestError(endpoint, f"unexpected response shape: {e.error_count()} error(s)", body=raw) from e

        if not response.is_success:
            raise RestError(endpoint, response.error_text, body=raw)
        return response
