"""
LiveKit media room adapter.

Translates livekit.rtc.Room callbacks into MediaRoom notifications and
publishes the local microphone track.
"""

from typing import Optional

from livekit import rtc

from core.media_room import (
    MediaRoom,
    ConnectionStateChanged,
    SpeakingParticipantsChanged,
    TrackPublished,
    DataReceived,
)
from models import ConnectionStatus
from utils import get_logger

logger = get_logger(__name__)

MICROPHONE_SAMPLE_RATE = 48000
MICROPHONE_CHANNELS = 1

_STATUS_MAP = {
    rtc.ConnectionState.CONN_CONNECTED: ConnectionStatus.CONNECTED,
    rtc.ConnectionState.CONN_RECONNECTING: ConnectionStatus.RECONNECTING,
}


def _track_kind(kind) -> str:
    if kind == rtc.TrackKind.KIND_AUDIO:
        return "audio"
    if kind == rtc.TrackKind.KIND_VIDEO:
        return "video"
    return str(kind)


class LiveKitRoomAdapter(MediaRoom):
    """MediaRoom backed by a livekit.rtc.Room. One adapter per session."""

    def __init__(self, auto_subscribe: bool = True):
        super().__init__()
        self.auto_subscribe = auto_subscribe
        self.room: Optional[rtc.Room] = None
        self._microphone: Optional[rtc.LocalTrackPublication] = None
        self._audio_source: Optional[rtc.AudioSource] = None
        self._leaving = False

    @property
    def microphone_enabled(self) -> bool:
        return self._microphone is not None

    async def connect(self, url: str, token: str):
        if self.room is not None:
            await self.disconnect()

        self._leaving = False
        room = rtc.Room()
        self._register_handlers(room)
        self.room = room

        self.notify(ConnectionStateChanged(status=ConnectionStatus.CONNECTING))
        try:
            await room.connect(url, token, options=rtc.RoomOptions(auto_subscribe=self.auto_subscribe))
        except BaseException:
            # Connect failed or was cancelled: drop the half-open room quietly
            self._leaving = True
            self.room = None
            try:
                await room.disconnect()
            except Exception as e:
                logger.debug(f"Cleanup after failed connect: {e}")
            raise

        logger.info(f"Joined room {room.name} as {room.local_participant.identity}")

    async def disconnect(self):
        room, self.room = self.room, None
        if room is None:
            return

        self._leaving = True
        self._microphone = None
        self._audio_source = None
        try:
            await room.disconnect()
        except Exception as e:
            logger.warning(f"Error leaving room: {e}")

    async def set_microphone(self, enabled: bool):
        room = self.room
        if room is None:
            raise RuntimeError("Room is not connected")

        if enabled:
            if self._microphone is not None:
                return
            source = rtc.AudioSource(MICROPHONE_SAMPLE_RATE, MICROPHONE_CHANNELS)
            track = rtc.LocalAudioTrack.create_audio_track("microphone", source)
            options = rtc.TrackPublishOptions(source=rtc.TrackSource.SOURCE_MICROPHONE)
            self._microphone = await room.local_participant.publish_track(track, options)
            self._audio_source = source
            logger.info("Microphone published")
        else:
            publication, self._microphone = self._microphone, None
            self._audio_source = None
            if publication is not None:
                await room.local_participant.unpublish_track(publication.sid)
                logger.info("Microphone unpublished")

    def _register_handlers(self, room: rtc.Room):
        @room.on("connection_state_changed")
        def on_connection_state_changed(state):
            status = _STATUS_MAP.get(state)
            if status is not None:
                self.notify(ConnectionStateChanged(status=status))

        @room.on("disconnected")
        def on_disconnected(reason):
            self.notify(ConnectionStateChanged(
                status=ConnectionStatus.DISCONNECTED,
                close_code=str(reason),
                was_cancelled=self._leaving,
                error_message=None if self._leaving else f"Room disconnected ({reason})",
            ))

        @room.on("active_speakers_changed")
        def on_active_speakers_changed(speakers):
            local_identity = room.local_participant.identity
            identities = [p.identity for p in speakers]
            self.notify(SpeakingParticipantsChanged(
                speaker_identities=identities,
                local_speaking=local_identity in identities,
            ))

        @room.on("track_published")
        def on_track_published(publication, participant):
            self.notify(TrackPublished(
                participant_identity=participant.identity,
                track_sid=publication.sid,
                kind=_track_kind(publication.kind),
            ))

        @room.on("local_track_published")
        def on_local_track_published(publication, track):
            self.notify(TrackPublished(
                participant_identity=room.local_participant.identity,
                track_sid=publication.sid,
                kind=_track_kind(publication.kind),
                is_local=True,
            ))

        @room.on("data_received")
        def on_data_received(packet):
            participant = packet.participant
            self.notify(DataReceived(
                data=bytes(packet.data),
                topic=packet.topic or None,
                participant_identity=participant.identity if participant else None,
            ))
