"""
Core types for the agent system.

These types represent the data that flows through the orchestration loop:
conversation turns, the tool calls the model asks for, the results the
tools hand back, and the todo items the agent keeps for itself.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Message roles in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class Turn:
    """
    A single entry in the conversation history.

    Turns are immutable. The conversation grows by appending new turns,
    never by editing existing ones (the system turn is the only slot that
    gets replaced, and it is replaced wholesale).
    """
    role: Role
    content: str
    tool_call_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_message(self) -> dict[str, Any]:
        """Convert to OpenAI API format."""
        result: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
        }
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        return result

    def to_wire_message(self) -> dict[str, Any]:
        """
        Convert for sending to the model.

        Tool turns have no matching assistant `tool_calls` entry (the model
        answers with a Decision Document, not native tool calls), so they go
        out as user messages labelled with their call id.
        """
        if self.role is not Role.TOOL:
            return self.to_message()
        label = f"Tool result {self.tool_call_id}" if self.tool_call_id else "Tool result"
        return {"role": Role.USER.value, "content": f"{label}:\n{self.content}"}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted record format."""
        result = self.to_message()
        result["timestamp"] = self.timestamp.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Turn":
        """Create from the persisted record format."""
        timestamp = data.get("timestamp")
        return cls(
            role=Role(data["role"]),
            content=data.get("content") or "",
            tool_call_id=data.get("tool_call_id"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
        )


@dataclass(frozen=True)
class ToolCall:
    """
    A request from the model to execute a tool.

    Frozen once parsed: the dispatcher owns it from here on and nothing
    downstream may rewrite its name or arguments.
    """
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ToolResult:
    """
    The result of executing a tool.

    Expected failures are reported here with success=False rather than
    raised, so the loop can always append a result turn. Tool-specific
    data (file contents, listings, stdout) travels in payload.
    """
    success: bool = True
    error: str | None = None
    message: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    tool_call_id: str = ""

    @classmethod
    def ok(cls, message: str | None = None, **payload: Any) -> "ToolResult":
        return cls(success=True, message=message, payload=payload)

    @classmethod
    def fail(cls, error: str, **payload: Any) -> "ToolResult":
        return cls(success=False, error=error, payload=payload)

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the wire shape {success, error?, message?, ...payload}."""
        result: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
        if self.message is not None:
            result["message"] = self.message
        result.update(self.payload)
        return result


@dataclass
class TodoItem:
    """A task the agent has planned for itself."""
    task: str
    completed: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task,
            "completed": self.completed,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TodoItem":
        created_at = data.get("created_at")
        return cls(
            task=data["task"],
            completed=bool(data.get("completed", False)),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )


@dataclass
class TruncationEvent:
    """
    Records when the outgoing context had to drop turns.

    The history window already bounds the conversation; this records the
    additional drops made to fit the token budget so the loss is observable.
    """
    turns_dropped: int
    tokens_dropped: int
    oldest_dropped_content: str
    reason: str = "context_budget_exceeded"
