"""
Tool base class and the per-conversation context threaded through tools.

Tools are the ONLY mechanism by which the agent affects anything. A tool
declares a name, a description and a parameter schema (rendered into the
system prompt) and implements execute(args, context).

execute() reports expected failures as ToolResult(success=False). Anything
it raises is caught by the registry and converted the same way, so the loop
can always append a result turn.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from codeloop.errors import ToolExecutionError
from codeloop.types import ToolResult

if TYPE_CHECKING:
    from codeloop.llm import ChatClient
    from codeloop.sandbox import Sandbox
    from codeloop.session import Conversation
    from codeloop.todos import TodoList
    from codeloop.workspace import Workspace

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "array": (list,),
    "object": (dict,),
    "boolean": (bool,),
    "integer": (int,),
    "number": (int, float),
}


class ProjectController(Protocol):
    """Project operations the project tool delegates to (the agent)."""

    @property
    def project_name(self) -> str: ...

    def create_project(self, name: str) -> None: ...

    def switch_project(self, name: str) -> None: ...

    def list_projects(self) -> list[str]: ...


@dataclass
class ToolContext:
    """
    Everything a tool may touch, for one conversation.

    Passed explicitly to every execute() call instead of living in module
    globals, so two conversations never share a workspace or a todo list.
    The request_* fields are reset by the loop at the start of each request.
    """
    workspace: Workspace
    todos: TodoList
    sandbox: Sandbox
    llm: ChatClient | None = None
    projects: ProjectController | None = None
    conversation: Conversation | None = None
    request_text: str = ""
    recent_actions: list[dict[str, Any]] = field(default_factory=list)
    messages_sent: list[str] = field(default_factory=list)
    files_touched: list[str] = field(default_factory=list)
    last_execution: str | None = None

    def begin_request(self, user_message: str) -> None:
        self.request_text = user_message
        self.recent_actions = []
        self.messages_sent = []

    def record_action(self, tool: str, result: ToolResult) -> None:
        self.recent_actions.append({"tool": tool, "result": result.to_dict()})
        del self.recent_actions[:-10]

    def note_file(self, path: str) -> None:
        if path not in self.files_touched:
            self.files_touched.append(path)

    def complete(self, messages: list[dict[str, Any]], **options: Any) -> str:
        """
        Make a dedicated generation call (file contents, user messages).

        Raises:
            ToolExecutionError: if no model client is configured
            TransportError: if the model cannot be reached
        """
        if self.llm is None:
            raise ToolExecutionError("generation", "no model client is configured")
        return self.llm.chat(messages, **options).content


class Tool(ABC):
    """
    Base class for every tool.

    Subclasses set name and description and implement parameters() and
    execute().
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Parameter schema: {"properties": {...}, "required": [...]}."""
        ...

    @abstractmethod
    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        ...

    def definition(self) -> dict[str, Any]:
        """OpenAI-style function definition."""
        params = self.parameters()
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": params.get("properties", {}),
                    "required": params.get("required", []),
                },
            },
        }

    def validate(self, args: dict[str, Any]) -> list[str]:
        """Check required arguments, declared types and enums."""
        params = self.parameters()
        properties = params.get("properties", {})
        issues = [
            f"Missing required argument: {name}"
            for name in params.get("required", [])
            if name not in args
        ]
        for name, value in args.items():
            spec = properties.get(name)
            if spec is None or value is None:
                continue
            declared = spec.get("type")
            allowed = declared if isinstance(declared, list) else [declared] if declared else []
            expected = tuple(t for name_ in allowed for t in _JSON_TYPES.get(name_, ()))
            if expected and not isinstance(value, expected):
                issues.append(f"Argument {name} must be of type {' or '.join(allowed)}")
            elif "enum" in spec and value not in spec["enum"]:
                issues.append(f"Argument {name} must be one of: {', '.join(map(str, spec['enum']))}")
        return issues
