"""Unit tests for the chat session store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from rag_ingest.sessions import SessionStore


@pytest.fixture()
def sessions() -> SessionStore:
    return SessionStore()


def test_create_and_get(sessions: SessionStore) -> None:
    session = sessions.create(collection_name="reports")
    assert sessions.get(session.id) is session
    assert session.collection_name == "reports"
    assert len(sessions) == 1


def test_create_is_idempotent_for_known_id(sessions: SessionStore) -> None:
    first = sessions.create(session_id="abc")
    assert sessions.create(session_id="abc") is first
    assert first.id == "abc"
    assert len(sessions) == 1


def test_add_message_to_unknown_session(sessions: SessionStore) -> None:
    with pytest.raises(KeyError):
        sessions.add_message("missing", "user", "hello")


def test_formatted_history(sessions: SessionStore) -> None:
    sid = sessions.create().id
    assert sessions.formatted_history(sid) == "No previous conversation."
    sessions.add_message(sid, "user", "What is RAG?")
    sessions.add_message(sid, "assistant", "Retrieval-augmented generation.")
    assert sessions.formatted_history(sid) == "Human: What is RAG?\nAssistant: Retrieval-augmented generation."


def test_formatted_history_keeps_last_messages(sessions: SessionStore) -> None:
    sid = sessions.create().id
    for i in range(6):
        sessions.add_message(sid, "user", f"q{i}")
    assert sessions.formatted_history(sid, max_messages=2) == "Human: q4\nHuman: q5"


def test_history_pairs(sessions: SessionStore) -> None:
    sid = sessions.create().id
    sessions.add_message(sid, "user", "q1")
    sessions.add_message(sid, "assistant", "a1")
    sessions.add_message(sid, "user", "q2")
    sessions.add_message(sid, "assistant", "a2")
    assert sessions.history_pairs(sid) == [("q1", "a1"), ("q2", "a2")]
    assert sessions.history_pairs("missing") == []


def test_expire_removes_idle_sessions(sessions: SessionStore) -> None:
    old = sessions.create()
    fresh = sessions.create()
    old.updated_at -= timedelta(hours=30)

    assert sessions.expire(max_age_hours=24) == 1
    assert sessions.get(old.id) is None
    assert sessions.get(fresh.id) is fresh


def test_delete_and_all(sessions: SessionStore) -> None:
    a = sessions.create()
    b = sessions.create()
    assert {s.id for s in sessions.all()} == {a.id, b.id}
    assert sessions.delete(a.id)
    assert not sessions.delete(a.id)
    assert [s.id for s in sessions.all()] == [b.id]


def test_stores_are_independent() -> None:
    one, two = SessionStore(), SessionStore()
    one.create(session_id="shared")
    assert two.get("shared") is None
