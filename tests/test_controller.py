"""Tests for AvatarSessionController lifecycle, events and teardown."""

import asyncio

import pytest

from config import EventTransport
from conftest import drain
from errors import InvalidSessionState, SendFailed, RestError
from models import (
    ConnectionStatus,
    InputMode,
    SessionPhase,
    Speaker,
    TaskType,
)


async def started(make_controller, **kwargs):
    controller = make_controller(**kwargs)
    assert await controller.start() is True
    return controller


class TestStart:

    @pytest.mark.asyncio
    async def test_start_reaches_active_with_opening_turn(self, make_controller, api, room, side_channel):
        controller = await started(make_controller)

        assert controller.phase == SessionPhase.ACTIVE
        assert controller.connection.status == ConnectionStatus.CONNECTED
        assert [c[0] for c in api.calls] == ["new_session", "start_session", "create_token"]
        assert room.connect_calls == [("wss://room", "T1")]
        assert room.microphone_calls == [True]
        assert "session_id=S1" in side_channel.urls[0]
        assert "session_token=TOK" in side_channel.urls[0]

        transcript = controller.transcript
        assert len(transcript) == 1
        assert transcript[0].speaker == Speaker.AVATAR
        assert transcript[0].text == "Hello there"
        assert controller.is_preparing is False
        assert controller.credentials.session_id == "S1"

    @pytest.mark.asyncio
    async def test_handshake_failure_never_touches_room(self, make_controller, api, room, rest_error):
        api.errors["start_session"] = rest_error
        controller = make_controller()

        assert await controller.start() is False

        assert controller.phase == SessionPhase.FAILED
        assert controller.credentials is None
        assert room.connect_calls == []
        assert api.called("create_token") == []
        assert "start" in controller.error_message
        assert controller.connection.status == ConnectionStatus.FAILED

    @pytest.mark.asyncio
    async def test_handshake_failure_releases_created_session(self, make_controller, api, rest_error):
        api.errors["start_session"] = rest_error
        controller = make_controller()

        assert await controller.start() is False

        assert api.called("stop_session") == [("stop_session", "S1")]

    @pytest.mark.asyncio
    async def test_room_connect_failure_fails_session(self, make_controller, room, side_channel):
        room.connect_error = RuntimeError("no route")
        controller = make_controller()

        assert await controller.start() is False

        assert controller.phase == SessionPhase.FAILED
        assert "media room" in controller.error_message
        assert side_channel.close_calls == 1
        assert controller.credentials is None

    @pytest.mark.asyncio
    async def test_side_channel_failure_fails_session(self, make_controller, room, side_channel):
        side_channel.connect_error = OSError("refused")
        controller = make_controller()

        assert await controller.start() is False

        assert controller.phase == SessionPhase.FAILED
        assert "side channel" in controller.error_message
        assert room.disconnect_calls >= 1

    @pytest.mark.asyncio
    async def test_second_start_while_active_is_ignored(self, make_controller, api):
        controller = await started(make_controller)

        assert await controller.start() is False
        assert controller.phase == SessionPhase.ACTIVE
        assert len(api.called("new_session")) == 1

    @pytest.mark.asyncio
    async def test_restart_after_failure_clears_previous_state(self, make_controller, api, rest_error):
        api.errors["create_token"] = rest_error
        controller = make_controller()
        assert await controller.start() is False

        api.errors.clear()
        assert await controller.start() is True
        assert controller.error_message is None
        assert len(controller.transcript) == 1


class TestStop:

    @pytest.mark.asyncio
    async def test_stop_from_idle_is_noop(self, make_controller, room):
        controller = make_controller()
        await controller.stop()

        assert controller.phase == SessionPhase.IDLE
        assert room.disconnect_calls == 0

    @pytest.mark.asyncio
    async def test_stop_from_active_releases_everything(self, make_controller, api, room, side_channel):
        controller = await started(make_controller)

        await controller.stop()

        assert controller.phase == SessionPhase.IDLE
        assert controller.credentials is None
        assert controller.has_finished is True
        assert room.microphone_calls == [True, False]
        assert room.disconnect_calls == 1
        assert side_channel.close_calls == 1
        assert api.called("stop_session") == [("stop_session", "S1")]
        assert controller.connection.status == ConnectionStatus.DISCONNECTED
        assert controller.error_message is None

    @pytest.mark.asyncio
    async def test_stop_during_preparing_cancels_handshake(self, make_controller, api, room):
        api.new_session_gate = asyncio.Event()
        controller = make_controller()

        start = asyncio.create_task(controller.start())
        await drain()
        assert controller.phase == SessionPhase.PREPARING

        await controller.stop()

        assert await start is False
        assert controller.phase == SessionPhase.IDLE
        assert room.connect_calls == []
        assert api.called("stop_session") == []

    @pytest.mark.asyncio
    async def test_stop_after_session_created_releases_it(self, make_controller, api, room):
        api.start_session_gate = asyncio.Event()
        controller = make_controller()

        start = asyncio.create_task(controller.start())
        await drain()
        assert api.called("start_session") == [("start_session", "S1")]

        await controller.stop()

        assert await start is False
        assert controller.phase == SessionPhase.IDLE
        assert room.connect_calls == []
        assert api.called("stop_session") == [("stop_session", "S1")]

    @pytest.mark.asyncio
    async def test_stop_during_media_connecting_cancels_connect(self, make_controller, room):
        room.connect_gate = asyncio.Event()
        controller = make_controller()

        start = asyncio.create_task(controller.start())
        await drain()
        assert controller.phase == SessionPhase.MEDIA_CONNECTING

        await controller.stop()

        assert await start is False
        assert controller.phase == SessionPhase.IDLE
        assert controller.credentials is None
        assert room.microphone_calls == []

    @pytest.mark.asyncio
    async def test_stop_from_failed_returns_to_idle(self, make_controller, api, rest_error):
        api.errors["new_session"] = rest_error
        controller = make_controller()
        await controller.start()
        assert controller.phase == SessionPhase.FAILED

        await controller.stop()
        assert controller.phase == SessionPhase.IDLE

    @pytest.mark.asyncio
    async def test_teardown_step_failure_is_swallowed(self, make_controller, api, room, rest_error):
        controller = await started(make_controller)
        api.errors["stop_session"] = rest_error

        await controller.stop()

        assert controller.phase == SessionPhase.IDLE
        assert room.disconnect_calls == 1

    @pytest.mark.asyncio
    async def test_stop_seals_open_turn(self, make_controller, room):
        controller = await started(make_controller)
        room.send_event({"type": "avatar_talking_message", "message": "Half a "})
        room.send_event({"type": "avatar_talking_message", "message": "sentence"})
        await drain()

        await controller.stop()

        assert controller.transcript[-1].text == "Half a sentence"
        assert controller.transcript[-1].speaker == Speaker.AVATAR


class TestEvents:

    @pytest.mark.asyncio
    async def test_avatar_turn_sealed_by_end_only(self, make_controller, room):
        controller = await started(make_controller)

        room.send_event({"type": "avatar_start_talking", "task_id": "t1"})
        room.send_event({"type": "avatar_talking_message", "message": "Hi "})
        room.send_event({"type": "avatar_talking_message", "message": "there"})
        await drain()
        assert controller.is_avatar_talking is True
        assert len(controller.transcript) == 1

        room.send_event({"type": "avatar_stop_talking", "task_id": "t1"})
        room.send_event({"type": "avatar_end_message"})
        await drain()

        assert controller.is_avatar_talking is False
        assert controller.transcript[-1].text == "Hi there"
        assert controller.transcript[-1].speaker == Speaker.AVATAR

    @pytest.mark.asyncio
    async def test_user_turn(self, make_controller, room):
        controller = await started(make_controller)

        room.send_event({"type": "user_start"})
        await drain()
        assert controller.is_user_talking is True
        assert controller.show_user_speaking is True

        room.send_event({"type": "user_talking_message", "message": "What is this?"})
        room.send_event({"type": "user_stop"})
        room.send_event({"type": "user_end_message"})
        await drain()

        assert controller.is_user_talking is False
        assert controller.transcript[-1].speaker == Speaker.USER
        assert controller.transcript[-1].is_user_message

    @pytest.mark.asyncio
    async def test_malformed_messages_are_skipped(self, make_controller, room):
        from core.media_room import DataReceived

        controller = await started(make_controller)

        room.notify(DataReceived(data=b"not json"))
        room.send_event({"type": "avatar_dance"})
        room.send_event({"type": "avatar_start_talking"})
        room.send_event({"type": "avatar_start_talking", "task_id": "t9"})
        await drain()

        assert controller.phase == SessionPhase.ACTIVE
        assert controller.is_avatar_talking is True

    @pytest.mark.asyncio
    async def test_side_channel_events_ignored_with_room_data_transport(self, make_controller, side_channel):
        controller = await started(make_controller, event_transport=EventTransport.ROOM_DATA)

        side_channel.send_event({"type": "avatar_start_talking", "task_id": "t1"})
        await drain()

        assert controller.is_avatar_talking is False

    @pytest.mark.asyncio
    async def test_side_channel_transport(self, make_controller, room, side_channel):
        controller = await started(make_controller, event_transport=EventTransport.SIDE_CHANNEL)

        room.send_event({"type": "avatar_start_talking", "task_id": "room"})
        side_channel.send_event({"type": "avatar_start_talking", "task_id": "ws"})
        await drain()

        assert controller.is_avatar_talking is True
        assert controller.aggregator.active_task_ids == ["ws"]

    @pytest.mark.asyncio
    async def test_remote_disconnect_tears_down(self, make_controller, room, side_channel):
        controller = await started(make_controller)

        room.drop("server went away")
        await drain(30)

        assert controller.phase == SessionPhase.FAILED
        assert "server went away" in controller.error_message
        assert side_channel.close_calls == 1
        assert controller.credentials is None

    @pytest.mark.asyncio
    async def test_reconnecting_keeps_transcript(self, make_controller, room):
        from core.media_room import ConnectionStateChanged

        controller = await started(make_controller)
        room.notify(ConnectionStateChanged(status=ConnectionStatus.RECONNECTING))
        await drain()

        assert controller.connection.status == ConnectionStatus.RECONNECTING
        assert controller.phase == SessionPhase.ACTIVE
        assert len(controller.transcript) == 1

    @pytest.mark.asyncio
    async def test_local_speaker_drives_user_talking(self, make_controller, room):
        from core.media_room import SpeakingParticipantsChanged

        controller = await started(make_controller)
        room.notify(SpeakingParticipantsChanged(speaker_identities=["me"], local_speaking=True))
        await drain()

        assert controller.is_user_talking is True


class TestSend:

    @pytest.mark.asyncio
    async def test_send_requires_active(self, make_controller):
        controller = make_controller()

        with pytest.raises(InvalidSessionState):
            await controller.send("hello")

    @pytest.mark.asyncio
    async def test_send_posts_task(self, make_controller, api):
        controller = await started(make_controller)

        await controller.send("Tell me a story", TaskType.REPEAT)

        assert api.called("send_task") == [("send_task", "S1", "Tell me a story", TaskType.REPEAT)]
        assert controller.is_sending is False

    @pytest.mark.asyncio
    async def test_send_failure_keeps_session(self, make_controller, api):
        controller = await started(make_controller)
        api.errors["send_task"] = RestError("/v1/streaming.task", "HTTP 500", status_code=500)

        with pytest.raises(SendFailed):
            await controller.send("hello")

        assert controller.phase == SessionPhase.ACTIVE
        assert controller.is_sending is False


class TestObservers:

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, make_controller):
        controller = make_controller()
        snapshots = []
        unsubscribe = controller.subscribe(snapshots.append)

        await controller.start()
        assert snapshots[-1].phase == SessionPhase.ACTIVE
        seen = len(snapshots)

        unsubscribe()
        await controller.stop()
        assert len(snapshots) == seen

    @pytest.mark.asyncio
    async def test_active_hook(self, make_controller):
        controller = make_controller()
        changes = []
        controller.on_active_changed(changes.append)

        await controller.start()
        await controller.stop()

        assert changes == [True, False]

    @pytest.mark.asyncio
    async def test_text_mode_hides_user_speaking(self, make_controller, room):
        controller = await started(make_controller)
        controller.set_input_mode(InputMode.TEXT)

        room.send_event({"type": "user_start"})
        await drain()

        assert controller.is_user_talking is True
        assert controller.show_user_speaking is False
        assert controller.snapshot().input_mode == InputMode.TEXT
