"""Tools the agent can call, and the registry that dispatches them."""

from codeloop.tools.base import ProjectController, Tool, ToolContext
from codeloop.tools.control import SendMessageTool, StopTool
from codeloop.tools.execution import ExecuteCodeTool
from codeloop.tools.files import FileTool
from codeloop.tools.project import ProjectTool
from codeloop.tools.registry import ToolRegistry
from codeloop.tools.todo import TodoTool


def default_tools() -> list[Tool]:
    """The standard tool set, in the order they are documented to the model."""
    return [
        SendMessageTool(),
        FileTool(),
        ExecuteCodeTool(),
        TodoTool(),
        ProjectTool(),
        StopTool(),
    ]


def create_default_registry() -> ToolRegistry:
    return ToolRegistry(default_tools())


__all__ = [
    "ExecuteCodeTool",
    "FileTool",
    "ProjectController",
    "ProjectTool",
    "SendMessageTool",
    "StopTool",
    "TodoTool",
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "create_default_registry",
    "default_tools",
]
