"""Tests for the session phase state machine."""

import pytest

from core.state_machine import SessionStateMachine
from models import SessionPhase


@pytest.fixture
def machine():
    return SessionStateMachine("test")


def test_happy_path(machine):
    changes = []
    machine.set_on_state_change(lambda old, new: changes.append((old, new)))

    assert machine.begin_start()
    assert machine.transition_to(SessionPhase.MEDIA_CONNECTING)
    assert machine.transition_to(SessionPhase.ACTIVE)
    assert machine.is_active
    assert machine.begin_teardown()
    assert machine.finish_teardown()

    assert machine.phase == SessionPhase.IDLE
    assert [new for _, new in changes] == [
        SessionPhase.PREPARING,
        SessionPhase.MEDIA_CONNECTING,
        SessionPhase.ACTIVE,
        SessionPhase.TEARING_DOWN,
        SessionPhase.IDLE,
    ]


def test_failure_records_reason(machine):
    machine.begin_start()
    machine.begin_teardown()
    machine.finish_teardown("boom")

    assert machine.phase == SessionPhase.FAILED
    assert machine.failure_reason == "boom"
    assert machine.can_start


def test_restart_from_failed_clears_reason(machine):
    machine.begin_start()
    machine.begin_teardown()
    machine.finish_teardown("boom")

    assert machine.begin_start()
    assert machine.failure_reason is None


@pytest.mark.parametrize("busy", [
    SessionPhase.PREPARING,
    SessionPhase.MEDIA_CONNECTING,
    SessionPhase.ACTIVE,
])
def test_start_refused_while_busy(machine, busy):
    machine.begin_start()
    if busy != SessionPhase.PREPARING:
        machine.transition_to(SessionPhase.MEDIA_CONNECTING)
    if busy == SessionPhase.ACTIVE:
        machine.transition_to(SessionPhase.ACTIVE)

    assert machine.phase == busy
    assert machine.is_busy
    assert machine.begin_start() is False
    assert machine.phase == busy


def test_invalid_transitions_are_refused(machine):
    assert machine.transition_to(SessionPhase.ACTIVE) is False
    assert machine.begin_teardown() is False
    assert machine.phase == SessionPhase.IDLE
