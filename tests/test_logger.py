"""Tests for session-scoped logging."""

from loguru import logger

from utils.logger import SessionLogger, _console_format


def test_session_logger_carries_context():
    records = []
    sink_id = logger.add(records.append, format="{message}")
    try:
        SessionLogger("k1").bind(remote_session_id="S1").info("hello")
    finally:
        logger.remove(sink_id)

    extra = records[0].record["extra"]
    assert extra["session_key"] == "k1"
    assert extra["remote_session_id"] == "S1"


def test_console_format_tags_session():
    assert "[{extra[session_key]}]" in _console_format({"extra": {"session_key": "k1"}})
    assert "{extra[remote_session_id]}" in _console_format(
        {"extra": {"session_key": "k1", "remote_session_id": "S1"}}
    )
    assert "extra[" not in _console_format({"extra": {}})
