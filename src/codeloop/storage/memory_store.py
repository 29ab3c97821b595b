"""In-memory store, for tests and sessions that should not touch disk."""

import copy
import threading
from typing import Any

from codeloop.storage.backend import AgentStore


class InMemoryStore(AgentStore):
    """Keeps deep copies of every record in dictionaries."""

    def __init__(self) -> None:
        self._conversations: dict[str, dict[str, Any]] = {}
        self._projects: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_conversation(self, record: dict[str, Any]) -> None:
        conversation_id = record["metadata"]["id"]
        with self._lock:
            self._conversations[conversation_id] = copy.deepcopy(record)

    def load_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._conversations.get(conversation_id)
            return copy.deepcopy(record) if record is not None else None

    def latest_conversation(self) -> dict[str, Any] | None:
        with self._lock:
            if not self._conversations:
                return None
            latest = max(
                self._conversations.values(),
                key=lambda r: r["metadata"].get("last_modified") or "",
            )
            return copy.deepcopy(latest)

    def list_conversations(self) -> list[dict[str, Any]]:
        with self._lock:
            metadata = [copy.deepcopy(r["metadata"]) for r in self._conversations.values()]
        return sorted(metadata, key=lambda m: m.get("last_modified") or "", reverse=True)

    def delete_conversation(self, conversation_id: str) -> bool:
        with self._lock:
            return self._conversations.pop(conversation_id, None) is not None

    def save_project(self, name: str, snapshot: dict[str, Any]) -> None:
        with self._lock:
            self._projects[name] = copy.deepcopy(snapshot)

    def load_project(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            snapshot = self._projects.get(name)
            return copy.deepcopy(snapshot) if snapshot is not None else None

    def list_projects(self) -> list[str]:
        with self._lock:
            return sorted(self._projects)
