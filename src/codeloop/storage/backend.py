"""
Store Abstract Base Class.

The agent core persists nothing by itself. Durability is delegated to a
store that snapshots conversation records (turns, todos, workspace files)
and named project snapshots. All persistence goes through this interface
so backends can be swapped.
"""

from abc import ABC, abstractmethod
from typing import Any


class AgentStore(ABC):
    """
    Abstract base class for persistence backends.

    Records are plain JSON-compatible dicts:
    - conversation record: {metadata: {id, name, created_at, last_modified,
      project_name}, messages, todos, files}
    - project snapshot: {name, files, todos, saved_at}
    """

    @abstractmethod
    def save_conversation(self, record: dict[str, Any]) -> None:
        """Insert or replace a conversation record, keyed by metadata.id."""
        pass

    @abstractmethod
    def load_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        """Fetch a conversation record, or None if it does not exist."""
        pass

    @abstractmethod
    def latest_conversation(self) -> dict[str, Any] | None:
        """The most recently modified conversation record, if any."""
        pass

    @abstractmethod
    def list_conversations(self) -> list[dict[str, Any]]:
        """Metadata of every stored conversation, newest first."""
        pass

    @abstractmethod
    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        pass

    @abstractmethod
    def save_project(self, name: str, snapshot: dict[str, Any]) -> None:
        """Insert or replace a named project snapshot."""
        pass

    @abstractmethod
    def load_project(self, name: str) -> dict[str, Any] | None:
        """Fetch a project snapshot, or None if it does not exist."""
        pass

    @abstractmethod
    def list_projects(self) -> list[str]:
        """Names of every stored project, sorted."""
        pass

    def close(self) -> None:
        """Release any resources held by the store."""
        pass

    def __enter__(self) -> "AgentStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
