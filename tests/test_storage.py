"""
Tests for the conversation and project stores.
"""

from collections.abc import Iterator
from pathlib import Path

import pytest

from codeloop.storage import AgentStore, InMemoryStore, SQLiteStore


def record(conversation_id: str, last_modified: str, name: str | None = None) -> dict:
    return {
        "metadata": {
            "id": conversation_id,
            "name": name,
            "created_at": "2026-01-01T00:00:00",
            "last_modified": last_modified,
            "project_name": "demo",
        },
        "messages": [{"role": "user", "content": "hi", "timestamp": "2026-01-01T00:00:00"}],
        "todos": [],
        "files": {"main.py": "print(1)"},
    }


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path) -> Iterator[AgentStore]:
    if request.param == "memory":
        backend: AgentStore = InMemoryStore()
    else:
        backend = SQLiteStore(tmp_path / "nested" / "codeloop.db")
    yield backend
    backend.close()


class TestConversationStorage:
    """Both backends behave the same."""

    def test_save_and_load(self, store: AgentStore) -> None:
        store.save_conversation(record("c1", "2026-01-01T10:00:00"))
        loaded = store.load_conversation("c1")
        assert loaded == record("c1", "2026-01-01T10:00:00")

    def test_load_missing(self, store: AgentStore) -> None:
        assert store.load_conversation("nope") is None
        assert store.latest_conversation() is None

    def test_save_replaces(self, store: AgentStore) -> None:
        store.save_conversation(record("c1", "2026-01-01T10:00:00"))
        store.save_conversation(record("c1", "2026-01-01T11:00:00", name="Renamed"))
        assert store.load_conversation("c1")["metadata"]["name"] == "Renamed"
        assert len(store.list_conversations()) == 1

    def test_latest_and_listing_order(self, store: AgentStore) -> None:
        store.save_conversation(record("old", "2026-01-01T10:00:00"))
        store.save_conversation(record("new", "2026-01-02T10:00:00"))
        assert store.latest_conversation()["metadata"]["id"] == "new"
        assert [m["id"] for m in store.list_conversations()] == ["new", "old"]

    def test_delete(self, store: AgentStore) -> None:
        store.save_conversation(record("c1", "2026-01-01T10:00:00"))
        assert store.delete_conversation("c1")
        assert not store.delete_conversation("c1")

    def test_returned_records_are_copies(self, store: AgentStore) -> None:
        store.save_conversation(record("c1", "2026-01-01T10:00:00"))
        loaded = store.load_conversation("c1")
        loaded["files"]["main.py"] = "changed"
        assert store.load_conversation("c1")["files"]["main.py"] == "print(1)"


class TestProjectStorage:
    """Tests for project snapshots."""

    def test_save_load_list(self, store: AgentStore) -> None:
        store.save_project("beta", {"name": "beta", "files": {}, "todos": []})
        store.save_project("alpha", {"name": "alpha", "files": {"a.txt": "a"}, "todos": []})
        assert store.list_projects() == ["alpha", "beta"]
        assert store.load_project("alpha")["files"] == {"a.txt": "a"}
        assert store.load_project("gamma") is None


class TestSQLitePersistence:
    """SQLite data outlives the store object."""

    def test_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "codeloop.db"
        with SQLiteStore(path) as first:
            first.save_conversation(record("c1", "2026-01-01T10:00:00"))
            first.save_project("demo", {"name": "demo", "files": {}, "todos": []})

        with SQLiteStore(path) as second:
            assert second.load_conversation("c1")["metadata"]["id"] == "c1"
            assert second.list_projects() == ["demo"]
