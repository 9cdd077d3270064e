"""
Session handshake: realtime.new -> realtime.start -> streaming.create_token.

Strictly sequential and fail-fast. Credentials are only built once all
three calls succeed. If start or token fails, or the handshake is
cancelled after realtime.new, the created session is released with
realtime.stop before the error propagates.
"""

from typing import Optional

from errors import HandshakeFailed
from models import AvatarDescriptor, HandshakeStep, SessionCredentials
from utils import SessionLogger, get_logger

logger = get_logger(__name__)


class HandshakeClient:
    """Runs the ordered REST calls that establish a streaming session."""

    def __init__(self, api, session_logger: Optional[SessionLogger] = None):
        self.api = api
        self.logger = session_logger or logger

    async def perform(self, avatar: AvatarDescriptor) -> SessionCredentials:
        """
        Create, start and tokenize a session for an avatar.

        Raises:
            HandshakeFailed: tagged with the first step that failed
        """
        try:
            created = await self.api.new_session(avatar)
        except Exception as e:
            raise HandshakeFailed(HandshakeStep.CREATE, e) from e

        self.logger.info(f"Handshake: session {created.session_id} created, starting")

        try:
            try:
                await self.api.start_session(created.session_id)
            except Exception as e:
                raise HandshakeFailed(HandshakeStep.START, e) from e

            try:
                token = await self.api.create_token(created.session_id)
            except Exception as e:
                raise HandshakeFailed(HandshakeStep.TOKEN, e) from e
        except BaseException:
            await self._release(created.session_id)
            raise

        self.logger.info(f"Handshake complete for session {created.session_id}")

        return SessionCredentials(
            session_id=created.session_id,
            room_url=created.url,
            room_token=created.access_token,
            side_channel_token=token,
            duration_limit=created.session_duration_limit,
            is_paid=created.is_paid,
            realtime_endpoint=created.realtime_endpoint,
        )

    async def _release(self, session_id: str):
        try:
            await self.api.stop_session(session_id)
            self.logger.info(f"Released half-open session {session_id}")
        except Exception as e:
            self.logger.warning(f"Could not release session {session_id}: {e}")
