"""
Persistence collaborators for conversations and projects.

Backends:
- SQLiteStore: single-file local storage
- InMemoryStore: process-lifetime storage, used by tests
"""

from codeloop.storage.backend import AgentStore
from codeloop.storage.memory_store import InMemoryStore
from codeloop.storage.sqlite_store import SQLiteStore

__all__ = [
    "AgentStore",
    "InMemoryStore",
    "SQLiteStore",
]
