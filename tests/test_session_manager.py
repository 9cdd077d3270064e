"""Tests for the session registry."""

from datetime import timedelta

import pytest

from config import settings
from conftest import FakeMediaRoom, FakeSideChannel, FakeStreamingApi
from core.controller import AvatarSessionController
from core.session_manager import SessionManager
from models import SessionPhase


def fake_factory(avatar):
    return AvatarSessionController(
        avatar=avatar,
        api=FakeStreamingApi(),
        room=FakeMediaRoom(),
        side_channel=FakeSideChannel(),
        settle_delay=0,
    )


@pytest.fixture
def manager():
    return SessionManager(controller_factory=fake_factory)


@pytest.mark.asyncio
async def test_create_start_and_close(manager, avatar):
    controller = manager.create_session(avatar)
    assert manager.get_session(controller.session_key) is controller
    assert controller.phase == SessionPhase.IDLE

    task = manager.start_session(controller.session_key)
    assert await task is True
    assert manager.active_count == 1

    assert await manager.close_session(controller.session_key) is True
    assert manager.get_session(controller.session_key) is None
    assert controller.phase == SessionPhase.IDLE
    assert controller.api.closed is True


@pytest.mark.asyncio
async def test_unknown_keys(manager):
    assert manager.start_session("missing") is None
    assert await manager.close_session("missing") is False


@pytest.mark.asyncio
async def test_max_sessions(manager, avatar, monkeypatch):
    monkeypatch.setattr(settings, "max_sessions", 1)
    manager.create_session(avatar)

    with pytest.raises(RuntimeError):
        manager.create_session(avatar)


@pytest.mark.asyncio
async def test_list_sessions(manager, avatar):
    first = manager.create_session(avatar)
    second = manager.create_session(avatar)

    keys = {s.session_key for s in manager.list_sessions()}
    assert keys == {first.session_key, second.session_key}


@pytest.mark.asyncio
async def test_cleanup_inactive(manager, avatar):
    controller = manager.create_session(avatar)
    await manager.start_session(controller.session_key)

    later = controller.last_activity + timedelta(seconds=settings.session_timeout_seconds + 1)
    closed = await manager.cleanup_inactive(now=later)

    assert closed == [controller.session_key]
    assert manager.get_session(controller.session_key) is None


@pytest.mark.asyncio
async def test_stop_closes_everything(manager, avatar):
    await manager.start()
    controller = manager.create_session(avatar)
    await manager.start_session(controller.session_key)

    await manager.stop()

    assert manager.list_sessions() == []
    assert controller.phase == SessionPhase.IDLE
