"""Tests for the append-only JSONL session store."""

import json

import pytest

from zesbe.report import AgentError
from zesbe.store import TITLE_MAX, SessionStore


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "data")


def test_layout(store, tmp_path):
    info = store.new_session("openai", "gpt-4o", "/work")
    assert (tmp_path / "data" / "sessions" / "index.json").is_file()
    assert store.current is info
    assert info.working_dir == "/work"
    assert info.title.startswith("Chat ")


def test_messages_round_trip(store):
    store.new_session("openai", "gpt-4o")
    store.add_message("user", "hello", 2)
    store.add_message("assistant", "hi there", 3)
    messages = store.get_messages()
    assert [(m.role, m.content, m.tokens) for m in messages] == [
        ("user", "hello", 2),
        ("assistant", "hi there", 3),
    ]
    assert messages[0].model == "gpt-4o"
    assert messages[0].provider == "openai"


def test_index_counters(store):
    info = store.new_session("groq", "llama")
    store.add_message("user", "q", 5)
    store.add_message("assistant", "a", 7)
    saved = store.get_session(info.id)
    assert saved.message_count == 2
    assert saved.total_tokens == 12


def test_title_from_first_user_message(store):
    info = store.new_session("openai", "gpt-4o")
    store.add_message("user", "Explain the retry policy\nwith details", 1)
    store.add_message("user", "second question", 1)
    assert store.get_session(info.id).title == "Explain the retry policy"


def test_title_truncated(store):
    info = store.new_session("openai", "gpt-4o")
    store.add_message("user", "x" * 200)
    assert store.get_session(info.id).title == "x" * TITLE_MAX


def test_add_without_session(store):
    with pytest.raises(AgentError, match="no active session"):
        store.add_message("user", "orphan")


def test_corrupt_lines_skipped(store, tmp_path):
    info = store.new_session("openai", "gpt-4o")
    store.add_message("user", "good one")
    path = tmp_path / "data" / "sessions" / f"{info.id}.jsonl"
    with path.open("a", encoding="utf-8") as f:
        f.write("{truncated\n")
        f.write("[1, 2]\n")
        f.write("\n")
    store.add_message("assistant", "good two")
    assert [m.content for m in store.get_messages()] == ["good one", "good two"]


def test_list_newest_first(store):
    a = store.new_session("openai", "gpt-4o")
    b = store.new_session("groq", "llama")
    index = json.loads(store.index_path.read_text())
    index[a.id]["updated_at"] = "2025-01-01T00:00:00"
    index[b.id]["updated_at"] = "2025-06-01T00:00:00"
    store.index_path.write_text(json.dumps(index))
    assert [s.id for s in store.list_sessions()] == [b.id, a.id]
    assert len(store.list_sessions(limit=1)) == 1
    assert len(store.list_sessions(limit=0)) == 2


def test_resolve_id(store):
    info = store.new_session("openai", "gpt-4o")
    assert store.resolve_id(info.id) == info.id
    assert store.resolve_id(info.id[:8]) == info.id
    assert store.resolve_id("zzzz-no-match") is None


def test_load_session_switches_current(store):
    first = store.new_session("openai", "gpt-4o")
    store.add_message("user", "in first")
    store.new_session("openai", "gpt-4o")
    messages = store.load_session(first.id)
    assert [m.content for m in messages] == ["in first"]
    assert store.current.id == first.id
    store.add_message("assistant", "appended later")
    assert store.get_session(first.id).message_count == 2


def test_load_unknown_session(store):
    with pytest.raises(AgentError, match="session not found"):
        store.load_session("missing")


def test_delete_session(store, tmp_path):
    info = store.new_session("openai", "gpt-4o")
    store.add_message("user", "bye")
    assert store.delete_session(info.id)
    assert store.get_session(info.id) is None
    assert store.current is None
    assert not (tmp_path / "data" / "sessions" / f"{info.id}.jsonl").exists()
    assert not store.delete_session(info.id)


def test_export(store):
    info = store.new_session("openai", "gpt-4o")
    store.add_message("user", "héllo")
    data = json.loads(store.export_session(info.id))
    assert data["session"]["id"] == info.id
    assert data["messages"][0]["content"] == "héllo"


def test_unreadable_index_starts_fresh(store):
    store.index_path.write_text("not json")
    assert store.list_sessions() == []


def test_stats(store):
    store.new_session("openai", "gpt-4o")
    store.add_message("user", "q", 10)
    store.add_message("assistant", "a", 30)
    store.new_session("groq", "llama")
    store.add_message("user", "q", 20)
    s = store.stats()
    assert s["total_sessions"] == 2
    assert s["total_messages"] == 3
    assert s["total_tokens"] == 60
    assert s["average_tokens"] == 20.0
    assert s["most_used_model"] in ("gpt-4o", "llama")


def test_stats_empty(store):
    assert store.stats() == {
        "total_sessions": 0,
        "total_messages": 0,
        "total_tokens": 0,
        "average_tokens": 0.0,
        "most_used_model": "",
    }
