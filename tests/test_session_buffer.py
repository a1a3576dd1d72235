"""Tests for the bounded session buffer."""

import pytest

from agent_memory.core import SessionBuffer
from agent_memory.models import Message


def msg(content, role="user"):
    return Message(role=role, content=content)


def test_buffer_bound_single_eviction():
    """N+1 messages into a buffer capped at N evicts exactly one."""
    buffer = SessionBuffer(max_messages=3, max_tokens=10_000)
    evictions = [buffer.append("s1", msg(f"message {i}")) for i in range(4)]

    assert evictions == [0, 0, 0, 1]
    snapshot = buffer.snapshot("s1")
    assert len(snapshot.short_term) == 3
    assert [m.content for m in snapshot.short_term] == ["message 1", "message 2", "message 3"]
    assert snapshot.summary == "user: message 0"


def test_short_term_never_exceeds_cap():
    buffer = SessionBuffer(max_messages=5, max_tokens=10_000)
    for i in range(50):
        buffer.append("s1", msg(f"turn {i}", role="user" if i % 2 == 0 else "assistant"))
        assert len(buffer.snapshot("s1").short_term) <= 5


def test_token_budget_evicts_until_satisfied():
    buffer = SessionBuffer(max_messages=10, max_tokens=10, synopsis_chars=8)
    buffer.append("s1", msg("a" * 16))  # 4 tokens
    buffer.append("s1", msg("b" * 16))  # 4 tokens
    evicted = buffer.append("s1", msg("c" * 32))  # 8 tokens, evicts a and b

    assert evicted == 2
    snapshot = buffer.snapshot("s1")
    assert [m.content[0] for m in snapshot.short_term] == ["c"]
    # One synopsis line per eviction event, each message truncated
    assert snapshot.summary == "user: aaaaa... | user: bbbbb..."


def test_summary_grows_and_is_never_truncated():
    buffer = SessionBuffer(max_messages=1, max_tokens=10_000)
    for i in range(30):
        buffer.append("s1", msg(f"note {i}"))

    lines = buffer.snapshot("s1").summary.split("\n")
    assert len(lines) == 29
    assert lines[0] == "user: note 0"
    assert lines[-1] == "user: note 28"


def test_sessions_are_independent():
    buffer = SessionBuffer(max_messages=2)
    buffer.append("s1", msg("one"))
    buffer.append("s2", msg("two"))

    assert [m.content for m in buffer.snapshot("s1").short_term] == ["one"]
    assert [m.content for m in buffer.snapshot("s2").short_term] == ["two"]
    assert buffer.snapshot("unknown").short_term == []
    assert not buffer.has("unknown")


def test_load_replays_log():
    buffer = SessionBuffer(max_messages=2)
    buffer.append("s1", msg("stale state"))

    buffer.load("s1", [msg("first"), msg("second"), msg("third")])

    snapshot = buffer.snapshot("s1")
    assert [m.content for m in snapshot.short_term] == ["second", "third"]
    assert snapshot.summary == "user: first"


def test_oversized_message_is_kept_alone():
    buffer = SessionBuffer(max_messages=5, max_tokens=4)
    buffer.append("s1", msg("x" * 100))

    assert len(buffer.snapshot("s1").short_term) == 1


def test_invalid_cap():
    with pytest.raises(ValueError):
        SessionBuffer(max_messages=0)
    with pytest.raises(ValueError):
        SessionBuffer(max_sessions=0)


def test_least_recently_used_session_is_dropped():
    buffer = SessionBuffer(max_messages=3, max_sessions=2)
    buffer.append("s1", msg("first"))
    buffer.append("s2", msg("second"))
    buffer.append("s1", msg("first again"))
    buffer.append("s3", msg("third"))

    assert len(buffer) == 2
    assert buffer.has("s1")
    assert not buffer.has("s2")
    assert buffer.has("s3")
    assert buffer.snapshot("s2").short_term == []


def test_drop_reports_whether_window_was_held():
    buffer = SessionBuffer()
    buffer.append("s1", msg("hello"))

    assert buffer.drop("s1") is True
    assert buffer.drop("s1") is False
    assert len(buffer) == 0
