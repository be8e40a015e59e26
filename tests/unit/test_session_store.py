"""Unit tests for session stores."""

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
import pytest

from agentrunner.config import ObservabilitySettings, Settings
from agentrunner.persistence import InMemorySessionStore, SessionStore, SQLiteSessionStore


def _history():
    return [
        HumanMessage(content="What is 2+2?"),
        AIMessage(content="", tool_calls=[{"name": "calc", "args": {"expr": "2+2"}, "id": "c1"}]),
        ToolMessage(content="4", tool_call_id="c1", name="calc"),
        AIMessage(content="4"),
    ]


class TestInMemorySessionStore:
    def test_save_and_load(self):
        store = InMemorySessionStore()
        store.save("s1", _history())

        loaded = store.load("s1")

        assert [m.content for m in loaded] == ["What is 2+2?", "", "4", "4"]
        assert store.load("unknown") == []
        assert isinstance(store, SessionStore)

    def test_sliding_window(self):
        store = InMemorySessionStore(max_messages=2)
        store.save("s1", _history())
        assert [type(m) for m in store.load("s1")] == [ToolMessage, AIMessage]

    def test_load_returns_copy(self):
        store = InMemorySessionStore()
        store.save("s1", _history())
        store.load("s1").clear()
        assert len(store.load("s1")) == 4

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            InMemorySessionStore(max_messages=0)


class TestSQLiteSessionStore:
    def test_persists_across_instances(self, tmp_path):
        db_path = str(tmp_path / "nested" / "sessions.db")
        SQLiteSessionStore(db_path).save("s1", _history())

        loaded = SQLiteSessionStore(db_path).load("s1")

        assert isinstance(loaded[1], AIMessage)
        assert loaded[1].tool_calls[0]["args"] == {"expr": "2+2"}
        assert isinstance(loaded[2], ToolMessage)
        assert loaded[2].tool_call_id == "c1"

    def test_overwrite_and_list(self, tmp_path):
        store = SQLiteSessionStore(str(tmp_path / "sessions.db"))
        store.save("s1", _history())
        store.save("s1", _history()[:1])
        store.save("s2", _history())

        sessions = {row[0]: row[3] for row in store.list_sessions()}

        assert sessions == {"s1": 1, "s2": 4}
        assert len(store.load("s1")) == 1

    def test_delete_and_unknown(self, tmp_path):
        store = SQLiteSessionStore(str(tmp_path / "sessions.db"))
        store.save("s1", _history())
        store.delete("s1")
        assert store.load("s1") == []

    def test_default_path_comes_from_settings(self, tmp_path, monkeypatch):
        db_path = str(tmp_path / "configured" / "sessions.db")
        settings = Settings(observability=ObservabilitySettings(session_db_path=db_path))
        monkeypatch.setattr("agentrunner.persistence.session_store.get_settings", lambda: settings)

        store = SQLiteSessionStore()
        store.save("s1", _history())

        assert store.db_path == db_path
        assert len(SQLiteSessionStore(db_path).load("s1")) == 4
