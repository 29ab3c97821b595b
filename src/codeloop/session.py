"""
Conversation - the turn history of one agent conversation.

Two pieces of state, kept apart on purpose:
- the system slot: a single Turn replaced wholesale each iteration with
  the latest prompt and todo snapshot. It is never duplicated and never
  trimmed.
- the history: an immutable tuple of non-system turns. Appending builds a
  new tuple, so readers holding the previous one never see it change.
  When the history grows past the window the oldest turns fall off.

The loop owns the only writer handle; tools get read access through the
tool context.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from codeloop.types import Role, Turn

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 10


@dataclass
class ConversationMetadata:
    """Identity of a conversation, as persisted in its record."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    last_modified: datetime = field(default_factory=datetime.now)
    project_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "last_modified": self.last_modified.isoformat(),
            "project_name": self.project_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationMetadata:
        now = datetime.now().isoformat()
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data.get("name"),
            created_at=datetime.fromisoformat(data.get("created_at") or now),
            last_modified=datetime.fromisoformat(data.get("last_modified") or now),
            project_name=data.get("project_name"),
        )


class Conversation:
    """A system slot plus a windowed, append-only history of turns."""

    def __init__(
        self,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        metadata: ConversationMetadata | None = None,
    ) -> None:
        if history_window < 1:
            raise ValueError("history_window must be at least 1")
        self.history_window = history_window
        self.metadata = metadata or ConversationMetadata()
        self._system: Turn | None = None
        self._history: tuple[Turn, ...] = ()
        self._turns_trimmed = 0
        self._user_turns = 0
        self._lock = threading.Lock()

    @property
    def system(self) -> Turn | None:
        return self._system

    def set_system(self, content: str) -> Turn:
        """Replace the system slot."""
        turn = Turn(role=Role.SYSTEM, content=content)
        self._system = turn
        return turn

    def append(self, role: Role, content: str, tool_call_id: str | None = None) -> Turn:
        """
        Append a non-system turn, trimming the oldest turns past the window.

        Raises:
            ValueError: for system turns, which go through set_system()
        """
        if role == Role.SYSTEM:
            raise ValueError("System turns go through set_system(), not append()")

        turn = Turn(role=role, content=content, tool_call_id=tool_call_id)
        with self._lock:
            history = (*self._history, turn)
            overflow = len(history) - self.history_window
            if overflow > 0:
                history = history[overflow:]
                self._turns_trimmed += overflow
                logger.debug(f"History window trimmed {overflow} turn(s)")
            self._history = history
            if role == Role.USER:
                self._user_turns += 1
            self.metadata.last_modified = turn.timestamp
        return turn

    @property
    def history(self) -> tuple[Turn, ...]:
        """Non-system turns, oldest first."""
        return self._history

    def turns(self) -> list[Turn]:
        """System turn (if any) followed by the history."""
        history = self._history
        if self._system is None:
            return list(history)
        return [self._system, *history]

    def to_messages(self) -> list[dict[str, Any]]:
        """All turns in OpenAI API format."""
        return [turn.to_message() for turn in self.turns()]

    def has_user_turn(self) -> bool:
        """True once any user turn has been appended, even if since trimmed."""
        return self._user_turns > 0

    @property
    def turns_trimmed(self) -> int:
        return self._turns_trimmed

    def clear(self) -> None:
        """Drop the history. The system slot is kept."""
        with self._lock:
            self._history = ()
            self._turns_trimmed = 0
            self._user_turns = 0

    def __len__(self) -> int:
        return len(self._history)

    # =========================================================================
    # Records
    # =========================================================================

    def to_record(self) -> dict[str, Any]:
        """The metadata and messages parts of a conversation record."""
        return {
            "metadata": self.metadata.to_dict(),
            "messages": [turn.to_dict() for turn in self.turns()],
        }

    @classmethod
    def from_record(
        cls,
        record: dict[str, Any],
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> Conversation:
        """Rehydrate from a record; a stored system turn refills the slot."""
        conversation = cls(
            history_window=history_window,
            metadata=ConversationMetadata.from_dict(record.get("metadata") or {}),
        )
        for data in record.get("messages") or []:
            turn = Turn.from_dict(data)
            if turn.role == Role.SYSTEM:
                conversation._system = turn
            else:
                conversation._history = (*conversation._history, turn)
                if turn.role == Role.USER:
                    conversation._user_turns += 1
        overflow = len(conversation._history) - history_window
        if overflow > 0:
            conversation._history = conversation._history[overflow:]
            conversation._turns_trimmed = overflow
        return conversation
