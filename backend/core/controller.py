"""
Avatar session controller.

Drives one talking-avatar session end to end:

    handshake → side channel + media room (concurrently) → microphone on →
    settling delay → opening turn → ACTIVE → teardown

All state lives on the asyncio event loop that called start(). Notifications
from the media room and the side channel may arrive from any thread; they
are marshalled onto that loop and consumed by a single task, in order.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Set

from config import settings, Settings, EventTransport, get_side_channel_url
from errors import (
    AvatarSessionError,
    ConnectFailed,
    InvalidSessionState,
    ProtocolDecodeError,
    SendFailed,
    TransportClosed,
)
from models import (
    AvatarDescriptor,
    ConnectionState,
    ConnectionStatus,
    InputMode,
    SessionCredentials,
    SessionPhase,
    SessionSnapshot,
    Speaker,
    TaskType,
    TranscriptTurn,
)
from utils import SessionLogger
from .event_decoder import decode
from .handshake import HandshakeClient
from .media_room import (
    MediaRoom,
    ConnectionStateChanged,
    SpeakingParticipantsChanged,
    TrackPublished,
    DataReceived,
)
from .side_channel import SideChannel, SideChannelMessage, SideChannelClosed
from .state_machine import SessionStateMachine
from .turn_aggregator import (
    TurnAggregator,
    TurnSealed,
    TalkingSetChanged,
    UserSpeakingChanged,
)

SnapshotCallback = Callable[[SessionSnapshot], None]
ActiveCallback = Callable[[bool], None]


class AvatarSessionController:
    """
    Owns one avatar session: credentials, connections, transcript and the
    observable state the UI renders.

    Commands: start(), send(text), stop(). Observers: subscribe() for
    snapshots, on_active_changed() for host side effects (e.g. keeping the
    screen awake while a session runs).
    """

    def __init__(
        self,
        avatar: AvatarDescriptor,
        api,
        room: MediaRoom,
        side_channel: SideChannel,
        session_key: Optional[str] = None,
        config: Optional[Settings] = None,
        event_transport: Optional[EventTransport] = None,
        settle_delay: Optional[float] = None,
        opening_text: Optional[str] = None,
    ):
        self.avatar = avatar
        self.api = api
        self.room = room
        self.side_channel = side_channel
        self.session_key = session_key or uuid.uuid4().hex[:12]
        self.config = config or settings
        self.event_transport = event_transport or self.config.event_transport
        self.settle_delay = self.config.settle_delay_seconds if settle_delay is None else settle_delay
        self.opening_text = self.config.opening_text if opening_text is None else opening_text

        self.logger = SessionLogger(self.session_key)
        self.state_machine = SessionStateMachine(self.session_key, self.logger)
        self.state_machine.set_on_state_change(self._on_phase_change)
        self.aggregator = TurnAggregator(id_prefix=self.session_key)

        # Observable state
        self._connection = ConnectionState()
        self._credentials: Optional[SessionCredentials] = None
        self._transcript: List[TranscriptTurn] = []
        self._is_avatar_talking = False
        self._is_user_talking = False
        self._is_preparing = False
        self._sending = 0
        self._input_mode = InputMode.VOICE
        self._error_message: Optional[str] = None
        self._has_finished = False
        self._last_activity = datetime.now(timezone.utc)

        # Execution context
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbox: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._attempt: Optional[asyncio.Task] = None
        self._attempt_cancelled = False
        self._teardown: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._was_active = False

        self._subscribers: List[SnapshotCallback] = []
        self._active_callbacks: List[ActiveCallback] = []

        self.room.set_listener(self._marshal)
        self.side_channel.set_listener(self._marshal)

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self.state_machine.phase

    @property
    def connection(self) -> ConnectionState:
        return self._connection

    @property
    def credentials(self) -> Optional[SessionCredentials]:
        return self._credentials

    @property
    def transcript(self) -> List[TranscriptTurn]:
        return list(self._transcript)

    @property
    def is_avatar_talking(self) -> bool:
        return self._is_avatar_talking

    @property
    def is_user_talking(self) -> bool:
        return self._is_user_talking

    @property
    def show_user_speaking(self) -> bool:
        return self._is_user_talking and self._input_mode == InputMode.VOICE

    @property
    def is_preparing(self) -> bool:
        return self._is_preparing

    @property
    def is_sending(self) -> bool:
        return self._sending > 0

    @property
    def input_mode(self) -> InputMode:
        return self._input_mode

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def has_finished(self) -> bool:
        return self._has_finished

    @property
    def last_activity(self) -> datetime:
        return self._last_activity

    def snapshot(self) -> SessionSnapshot:
        creds = self._credentials
        return SessionSnapshot(
            session_key=self.session_key,
            avatar_id=self.avatar.avatar_id,
            avatar_name=self.avatar.avatar_name,
            phase=self.phase,
            connection=self._connection,
            session_id=creds.session_id if creds else None,
            session_duration_limit=creds.duration_limit if creds else None,
            transcript=list(self._transcript),
            is_avatar_talking=self._is_avatar_talking,
            is_user_talking=self._is_user_talking,
            show_user_speaking=self.show_user_speaking,
            is_preparing=self._is_preparing,
            is_sending=self.is_sending,
            input_mode=self._input_mode,
            error_message=self._error_message,
            has_finished=self._has_finished,
            last_activity=self._last_activity,
        )

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a snapshot listener. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_active_changed(self, callback: ActiveCallback) -> Callable[[], None]:
        """Register a hook fired with True when the session goes live and False after teardown."""
        self._active_callbacks.append(callback)

        def unsubscribe():
            if callback in self._active_callbacks:
                self._active_callbacks.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Run a full session start.

        Returns True once the session is ACTIVE. Returns False when the
        attempt failed (phase FAILED, error_message set), was stopped
        while in flight, or was ignored because a session is already busy.
        """
        if not self.state_machine.begin_start():
            return False

        self._loop = asyncio.get_running_loop()
        self._reset_session_state()
        self._is_preparing = True
        self._set_connection(ConnectionState.of(ConnectionStatus.PREPARING))
        self._start_consumer()

        self.logger.info(f"Starting session with avatar {self.avatar.avatar_id}")

        self._attempt_cancelled = False
        attempt = asyncio.create_task(self._run_start())
        self._attempt = attempt
        try:
            await attempt
            return True
        except asyncio.CancelledError:
            if self._attempt_cancelled:
                self.logger.info("Start attempt cancelled by teardown")
                return False
            # Our caller was cancelled: leave nothing half-open behind
            await self._shutdown()
            raise
        except Exception as e:
            message = e.message if isinstance(e, AvatarSessionError) else f"Unexpected error: {e}"
            self.logger.error(f"Session start failed: {message}")
            await self._shutdown(failure=message)
            return False
        finally:
            if self._attempt is attempt:
                self._attempt = None

    async def send(self, text: str, task_type: TaskType = TaskType.TALK):
        """
        Ask the avatar to talk about (or repeat) a piece of text.

        Raises:
            InvalidSessionState: session is not ACTIVE
            SendFailed: the task REST call failed; the session stays up
        """
        creds = self._credentials
        if not self.state_machine.is_active or creds is None:
            raise InvalidSessionState("send", self.phase)

        self._sending += 1
        self._touch()
        self._publish()
        try:
            await self.api.send_task(creds.session_id, text, task_type)
            self.logger.debug(f"Task sent ({task_type.value}): {len(text)} chars")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Send failed: {e}")
            raise SendFailed(e) from e
        finally:
            self._sending -= 1
            self._publish()

    async def stop(self):
        """
        Tear the session down from any phase. Never raises.

        Cancels an in-flight start (and waits for it to unwind), seals any
        half-streamed turn, then releases every resource best-effort.
        """
        if self.phase == SessionPhase.IDLE and self._teardown is None:
            return
        try:
            await self._shutdown()
            # A failure teardown may have been in flight; stop always ends IDLE
            if self.phase == SessionPhase.FAILED:
                await self._shutdown()
        except Exception as e:
            self.logger.error(f"Unexpected error during stop: {e}")

    def set_input_mode(self, mode: InputMode):
        if mode == self._input_mode:
            return
        self._input_mode = mode
        self._touch()
        self._publish()

    async def aclose(self):
        """Stop and detach from the room and side channel."""
        await self.stop()
        self.room.set_listener(None)
        self.side_channel.set_listener(None)
        self._subscribers.clear()
        self._active_callbacks.clear()

    # ------------------------------------------------------------------
    # Start sequence
    # ------------------------------------------------------------------

    async def _run_start(self):
        credentials = await HandshakeClient(self.api, self.logger).perform(self.avatar)
        self._credentials = credentials
        self.logger = self.logger.bind(remote_session_id=credentials.session_id)

        self.state_machine.transition_to(SessionPhase.MEDIA_CONNECTING)
        self._set_connection(ConnectionState.of(ConnectionStatus.CONNECTING))

        side_channel_url = get_side_channel_url(
            credentials.session_id,
            credentials.side_channel_token,
            opening_text=self.opening_text,
            config=self.config,
        )
        await self._connect_transports(credentials, side_channel_url)

        if self._connection.status not in (ConnectionStatus.CONNECTED, ConnectionStatus.RECONNECTING):
            self._set_connection(ConnectionState.of(ConnectionStatus.CONNECTED))

        if not self.room.microphone_enabled:
            try:
                await self.room.set_microphone(True)
            except Exception as e:
                raise ConnectFailed(e, target="microphone") from e

        await asyncio.sleep(self.settle_delay)

        self._append_turn(TranscriptTurn(
            id=self.aggregator.next_turn_id(),
            speaker=Speaker.AVATAR,
            text=self.opening_text,
        ))
        self._is_preparing = False
        self.state_machine.transition_to(SessionPhase.ACTIVE)
        self.logger.info("Session active")
        self._publish()
        self._set_active(True)

    async def _connect_transports(self, credentials: SessionCredentials, side_channel_url: str):
        """Connect room and side channel concurrently; both must succeed."""
        room_task = asyncio.create_task(self._connect_room(credentials))
        side_task = asyncio.create_task(self._connect_side_channel(side_channel_url))
        tasks = [room_task, side_task]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        # Room first so its error wins when both fail
        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _connect_room(self, credentials: SessionCredentials):
        try:
            await self.room.connect(credentials.room_url, credentials.room_token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ConnectFailed(e, target="media room") from e
        self.logger.info("Media room connected")

    async def _connect_side_channel(self, url: str):
        try:
            await self.side_channel.connect(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ConnectFailed(e, target="side channel") from e
        self.logger.info("Side channel connected")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _shutdown(self, failure: Optional[str] = None):
        """Run (or join) the single teardown in progress."""
        if self._teardown is None:
            self._teardown = asyncio.create_task(self._teardown_steps(failure))
        await asyncio.shield(self._teardown)

    async def _teardown_steps(self, failure: Optional[str]):
        try:
            if not self.state_machine.begin_teardown():
                return

            self.logger.info(f"Tearing down session{f' ({failure})' if failure else ''}")

            attempt = self._attempt
            if attempt is not None and not attempt.done():
                self._attempt_cancelled = True
                attempt.cancel()
                await asyncio.gather(attempt, return_exceptions=True)

            turn = self.aggregator.flush()
            if turn is not None:
                self._append_turn(turn)

            credentials = self._credentials

            if self.room.microphone_enabled:
                await self._best_effort("disable microphone", lambda: self.room.set_microphone(False))
            if credentials is not None:
                await self._best_effort(
                    "stop remote session",
                    lambda: self.api.stop_session(credentials.session_id),
                )
            await self._best_effort("close side channel", self.side_channel.close)
            await self._best_effort("disconnect room", self.room.disconnect)

            self._credentials = None
            self.aggregator.reset()
            self._is_avatar_talking = False
            self._is_user_talking = False
            self._is_preparing = False

            if failure:
                self._error_message = failure
                self._set_connection(ConnectionState.failed(failure), publish=False)
            else:
                self._has_finished = True
                self._set_connection(ConnectionState.of(ConnectionStatus.DISCONNECTED), publish=False)

            self.state_machine.finish_teardown(failure)
            self.logger.info(f"Teardown complete, session {self.phase.value}")
            self._publish()
            self._set_active(False)
        finally:
            await self._stop_consumer()
            self._teardown = None

    async def _best_effort(self, step: str, action: Callable[[], Awaitable]):
        try:
            await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Teardown step '{step}' failed: {e}")

    # ------------------------------------------------------------------
    # Notification handling (single consumer)
    # ------------------------------------------------------------------

    def _marshal(self, notification):
        """Listener for room and side channel; safe to call from any thread."""
        loop, inbox = self._loop, self._inbox
        if loop is None or inbox is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            inbox.put_nowait(notification)
        else:
            loop.call_soon_threadsafe(inbox.put_nowait, notification)

    def _start_consumer(self):
        self._inbox = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(self._inbox))

    async def _stop_consumer(self):
        consumer, self._consumer = self._consumer, None
        self._inbox = None
        if consumer is None or consumer is asyncio.current_task():
            return
        consumer.cancel()
        await asyncio.gather(consumer, return_exceptions=True)

    async def _consume(self, inbox: asyncio.Queue):
        while True:
            notification = await inbox.get()
            try:
                self._handle_notification(notification)
            except Exception as e:
                self.logger.error(f"Error handling {type(notification).__name__}: {e}")

    def _handle_notification(self, notification):
        # Late notifications from a session being (or already) torn down are dropped
        if self.phase not in (SessionPhase.MEDIA_CONNECTING, SessionPhase.ACTIVE):
            return

        self._touch()

        if isinstance(notification, ConnectionStateChanged):
            self._handle_room_state(notification)
        elif isinstance(notification, SpeakingParticipantsChanged):
            if notification.local_speaking != self._is_user_talking:
                self._is_user_talking = notification.local_speaking
                self._publish()
        elif isinstance(notification, TrackPublished):
            self.logger.debug(
                f"Track published: {notification.kind} {notification.track_sid} "
                f"by {notification.participant_identity}"
            )
        elif isinstance(notification, DataReceived):
            if self.event_transport != EventTransport.ROOM_DATA:
                return
            if self.config.data_topic and notification.topic != self.config.data_topic:
                return
            self._ingest(notification.data)
        elif isinstance(notification, SideChannelMessage):
            if self.event_transport == EventTransport.SIDE_CHANNEL:
                self._ingest(notification.data)
        elif isinstance(notification, SideChannelClosed):
            self._handle_side_channel_closed(notification)

    def _handle_room_state(self, notification: ConnectionStateChanged):
        status = notification.status
        self.logger.info(f"Room connection state: {status.value}")

        if status == ConnectionStatus.DISCONNECTED:
            closed = TransportClosed(
                code=notification.close_code,
                was_cancelled=notification.was_cancelled,
                reason=notification.error_message,
            )
            self._set_connection(ConnectionState.of(status))
            if closed.was_cancelled:
                return
            self._error_message = closed.message
            self._publish()
            if self._teardown is None:
                # Remote end closed the room; release everything else
                self._spawn(self._shutdown(failure=closed.message))
            return

        self._set_connection(ConnectionState.of(status))

    def _handle_side_channel_closed(self, notification: SideChannelClosed):
        if notification.was_cancelled:
            return
        closed = TransportClosed(
            code=notification.close_code,
            was_cancelled=False,
            reason=notification.reason,
        )
        self.logger.warning(f"Side channel closed unexpectedly: {closed.message}")
        self._error_message = f"Side channel: {closed.message}"
        self._publish()

    def _ingest(self, data: bytes):
        try:
            event = decode(data)
        except ProtocolDecodeError as e:
            self.logger.warning(f"Skipping {e.kind} event: {e.message}")
            return

        self.logger.debug(f"Event: {event.type}")
        effect = self.aggregator.apply(event)

        if isinstance(effect, TurnSealed):
            self._append_turn(effect.turn)
        elif isinstance(effect, TalkingSetChanged):
            if effect.is_avatar_talking != self._is_avatar_talking:
                self._is_avatar_talking = effect.is_avatar_talking
                self._publish()
        elif isinstance(effect, UserSpeakingChanged):
            if effect.is_user_talking != self._is_user_talking:
                self._is_user_talking = effect.is_user_talking
                self._publish()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reset_session_state(self):
        self._credentials = None
        self._transcript = []
        self.aggregator.reset()
        self._is_avatar_talking = False
        self._is_user_talking = False
        self._error_message = None
        self._has_finished = False
        self.logger = SessionLogger(self.session_key)
        self.state_machine.logger = self.logger

    def _append_turn(self, turn: TranscriptTurn):
        self._transcript.append(turn)
        self.logger.debug(f"Turn sealed ({turn.speaker.value}): {len(turn.text)} chars")
        self._publish()

    def _set_connection(self, state: ConnectionState, publish: bool = True):
        if state == self._connection:
            return
        self._connection = state
        if publish:
            self._publish()

    def _set_active(self, active: bool):
        if active == self._was_active:
            return
        self._was_active = active
        for callback in list(self._active_callbacks):
            try:
                callback(active)
            except Exception as e:
                self.logger.error(f"Active-state hook failed: {e}")

    def _on_phase_change(self, old: SessionPhase, new: SessionPhase):
        self._touch()
        self._publish()

    def _touch(self):
        self._last_activity = datetime.now(timezone.utc)

    def _publish(self):
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"Snapshot subscriber failed: {e}")

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
