"""
Session manager: registry of avatar session controllers.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from config import settings
from models import AvatarDescriptor, SessionPhase, SessionSnapshot
from utils import SessionLogger, get_logger
from .controller import AvatarSessionController

logger = get_logger(__name__)

ControllerFactory = Callable[[AvatarDescriptor], AvatarSessionController]


def default_controller_factory(avatar: AvatarDescriptor) -> AvatarSessionController:
    """Wire a controller to the production streaming API, LiveKit room and side channel."""
    from services import StreamingApi
    from transports import LiveKitRoomAdapter, WebSocketSideChannel

    return AvatarSessionController(
        avatar=avatar,
        api=StreamingApi(),
        room=LiveKitRoomAdapter(),
        side_channel=WebSocketSideChannel(),
    )


class SessionManager:
    """
    Manages all avatar sessions hosted by this process.

    Responsibilities:
    - Create and destroy controllers
    - Run session starts in the background
    - Close idle sessions after a timeout
    """

    def __init__(self, controller_factory: Optional[ControllerFactory] = None):
        self._controllers: Dict[str, AvatarSessionController] = {}
        self._start_tasks: Dict[str, asyncio.Task] = {}
        self._controller_factory = controller_factory or default_controller_factory
        self._cleanup_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start background tasks."""
        self._cleanup_task = asyncio.create_task(self._cleanup_inactive_sessions())

    async def stop(self):
        """Stop background tasks and close every session."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        for session_key in list(self._controllers.keys()):
            await self.close_session(session_key)

    def create_session(self, avatar: AvatarDescriptor) -> AvatarSessionController:
        """
        Register a controller for an avatar. The session is not started.

        Raises:
            RuntimeError: the max_sessions limit is reached
        """
        if len(self._controllers) >= settings.max_sessions:
            raise RuntimeError("Maximum number of sessions reached")

        controller = self._controller_factory(avatar)
        self._controllers[controller.session_key] = controller

        SessionLogger(controller.session_key).info(f"Session created for avatar {avatar.avatar_id}")
        return controller

    def start_session(self, session_key: str) -> Optional[asyncio.Task]:
        """Kick off controller.start() in the background. Returns None for unknown keys."""
        controller = self._controllers.get(session_key)
        if controller is None:
            return None

        running = self._start_tasks.get(session_key)
        if running is not None and not running.done():
            return running

        task = asyncio.create_task(controller.start())
        self._start_tasks[session_key] = task
        task.add_done_callback(lambda t, key=session_key: self._on_start_done(key, t))
        return task

    def get_session(self, session_key: str) -> Optional[AvatarSessionController]:
        return self._controllers.get(session_key)

    def list_sessions(self) -> List[SessionSnapshot]:
        return [controller.snapshot() for controller in self._controllers.values()]

    @property
    def active_count(self) -> int:
        return sum(1 for c in self._controllers.values() if c.phase == SessionPhase.ACTIVE)

    async def close_session(self, session_key: str) -> bool:
        """Stop and forget a session. Returns False for unknown keys."""
        controller = self._controllers.pop(session_key, None)
        if controller is None:
            return False

        await controller.aclose()

        task = self._start_tasks.pop(session_key, None)
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

        api = controller.api
        if hasattr(api, "aclose"):
            await api.aclose()

        snapshot = controller.snapshot()
        SessionLogger(session_key).info(
            f"Session closed - Turns: {len(snapshot.transcript)}, "
            f"Final phase: {snapshot.phase.value}"
        )
        return True

    async def _cleanup_inactive_sessions(self):
        """Background task to close sessions with no activity."""
        while True:
            try:
                await asyncio.sleep(60)
                await self.cleanup_inactive()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in session cleanup: {e}")

    async def cleanup_inactive(self, now: Optional[datetime] = None) -> List[str]:
        """Close every session idle for longer than session_timeout_seconds."""
        now = now or datetime.now(timezone.utc)
        threshold = timedelta(seconds=settings.session_timeout_seconds)

        inactive = [
            key for key, controller in self._controllers.items()
            if now - controller.last_activity > threshold
        ]
        for key in inactive:
            SessionLogger(key).info("Closing inactive session (timeout)")
            await self.close_session(key)
        return inactive

    def _on_start_done(self, session_key: str, task: asyncio.Task):
        if self._start_tasks.get(session_key) is task:
            self._start_tasks.pop(session_key, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Session {session_key} start crashed: {task.exception()}")


# Global session manager instance
_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Get the global session manager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
