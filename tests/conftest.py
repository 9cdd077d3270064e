"""Shared fixtures and in-memory fakes for the media room, side channel and streaming API."""

import asyncio
import json
import os

# Settings are read at import time
os.environ.setdefault("HEYGEN_API_KEY", "test-api-key")
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest

from config import settings
from core.media_room import MediaRoom, ConnectionStateChanged, DataReceived
from core.side_channel import SideChannel, SideChannelMessage, SideChannelClosed
from errors import RestError
from models import (
    AvatarDescriptor,
    ConnectionStatus,
    NewSessionData,
    ApiResponse,
    TaskType,
)


class FakeMediaRoom(MediaRoom):
    def __init__(self):
        super().__init__()
        self.connect_calls = []
        self.disconnect_calls = 0
        self.microphone_calls = []
        self.connect_error = None
        self.connect_gate = None
        self._mic = False
        self.connected = False

    @property
    def microphone_enabled(self) -> bool:
        return self._mic

    async def connect(self, url, token):
        self.connect_calls.append((url, token))
        self.notify(ConnectionStateChanged(status=ConnectionStatus.CONNECTING))
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        self.notify(ConnectionStateChanged(status=ConnectionStatus.CONNECTED))

    async def disconnect(self):
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            self.notify(ConnectionStateChanged(status=ConnectionStatus.DISCONNECTED, was_cancelled=True))

    async def set_microphone(self, enabled):
        self.microphone_calls.append(enabled)
        self._mic = enabled

    def send_event(self, event: dict, topic=None):
        self.notify(DataReceived(data=json.dumps(event).encode(), topic=topic))

    def drop(self, reason="server went away"):
        self.connected = False
        self.notify(ConnectionStateChanged(
            status=ConnectionStatus.DISCONNECTED,
            close_code="SERVER_SHUTDOWN",
            error_message=reason,
        ))


class FakeSideChannel(SideChannel):
    def __init__(self):
        super().__init__()
        self.urls = []
        self.close_calls = 0
        self.connect_error = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self, url):
        self.urls.append(url)
        if self.connect_error is not None:
            raise self.connect_error
        self._open = True

    async def close(self):
        self.close_calls += 1
        if self._open:
            self._open = False
            self.notify(SideChannelClosed(close_code="1000", was_cancelled=True))

    def send_event(self, event: dict):
        self.notify(SideChannelMessage(data=json.dumps(event).encode()))


class FakeStreamingApi:
    """Records calls; set `errors[<method>]` to make one fail."""

    def __init__(self, session_id="S1"):
        self.session_id = session_id
        self.calls = []
        self.errors = {}
        self.new_session_gate = None
        self.start_session_gate = None
        self.closed = False

    def _check(self, name):
        error = self.errors.get(name)
        if error is not None:
            raise error

    async def new_session(self, avatar):
        self.calls.append(("new_session", avatar.avatar_id))
        if self.new_session_gate is not None:
            await self.new_session_gate.wait()
        self._check("new_session")
        return NewSessionData(
            session_id=self.session_id,
            access_token="T1",
            url="wss://room",
            is_paid=True,
            session_duration_limit=600,
        )

    async def start_session(self, session_id):
        self.calls.append(("start_session", session_id))
        if self.start_session_gate is not None:
            await self.start_session_gate.wait()
        self._check("start_session")
        return ApiResponse(code=100)

    async def create_token(self, session_id):
        self.calls.append(("create_token", session_id))
        self._check("create_token")
        return "TOK"

    async def stop_session(self, session_id):
        self.calls.append(("stop_session", session_id))
        self._check("stop_session")
        return ApiResponse(code=100)

    async def send_task(self, session_id, text, task_type=TaskType.TALK):
        self.calls.append(("send_task", session_id, text, task_type))
        self._check("send_task")
        return ApiResponse(code=100)

    async def aclose(self):
        self.closed = True

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


async def drain(rounds: int = 10):
    """Let queued notifications and spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def avatar():
    return AvatarDescriptor(
        avatar_id="Wayne_20240711",
        avatar_name="Wayne",
        knowledge_base_id="demo-1",
        voice_id="voice-1",
    )


@pytest.fixture
def room():
    return FakeMediaRoom()


@pytest.fixture
def side_channel():
    return FakeSideChannel()


@pytest.fixture
def api():
    return FakeStreamingApi()


@pytest.fixture
def make_controller(avatar, api, room, side_channel):
    from core.controller import AvatarSessionController

    def factory(**kwargs):
        kwargs.setdefault("settle_delay", 0)
        kwargs.setdefault("opening_text", "Hello there")
        return AvatarSessionController(
            avatar=avatar,
            api=api,
            room=room,
            side_channel=side_channel,
            session_key="test",
            config=settings,
            **kwargs,
        )

    return factory


@pytest.fixture
def rest_error():
    return RestError("/v1/realtime.start", "code 400", status_code=200)
