"""
Tool Registry - the single lookup and dispatch point for tools.

Built once from the full tool set and immutable afterwards: a duplicate
name is a construction-time error, and there is no register() to call
later. Dispatching an unknown name yields a failed ToolResult instead of
raising, so every call the model asks for produces a result turn.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from codeloop.errors import ToolExecutionError, UnknownToolError
from codeloop.prompts import format_tools_section
from codeloop.tools.base import Tool, ToolContext
from codeloop.types import ToolCall, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Immutable name -> Tool map."""

    def __init__(self, tools: Iterable[Tool]) -> None:
        registered: dict[str, Tool] = {}
        for tool in tools:
            if not tool.name:
                raise ValueError(f"Tool {type(tool).__name__} has no name")
            if tool.name in registered:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            registered[tool.name] = tool
        self._tools = registered
        logger.debug(f"Registry built with tools: {', '.join(registered)}")

    def get(self, name: str) -> Tool:
        """
        Look up a tool by name.

        Raises:
            UnknownToolError: if no tool has this name
        """
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def execute(self, tool_call: ToolCall, context: ToolContext) -> ToolResult:
        """
        Execute a tool call. Never raises for tool-level failures.

        Unknown names, invalid arguments and exceptions escaping the tool
        all come back as ToolResult(success=False).
        """
        try:
            tool = self.get(tool_call.name)
        except UnknownToolError as e:
            logger.warning(str(e))
            result = ToolResult.fail(str(e))
            result.tool_call_id = tool_call.id
            return result

        issues = tool.validate(tool_call.arguments)
        if issues:
            logger.info(f"Rejected arguments for {tool.name}: {'; '.join(issues)}")
            result = ToolResult.fail("; ".join(issues))
        else:
            logger.info(f"Executing tool: {tool.name}")
            try:
                result = tool.execute(tool_call.arguments, context)
            except Exception as e:
                error = ToolExecutionError(tool.name, str(e) or type(e).__name__)
                logger.error(f"Tool {tool.name} failed: {error}", exc_info=True)
                result = ToolResult.fail(str(error))

        result.tool_call_id = tool_call.id
        context.record_action(tool.name, result)
        return result

    def definitions(self) -> list[dict[str, Any]]:
        """OpenAI-format definitions for all tools, in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    def protocol_documentation(self) -> str:
        """Tool vocabulary as rendered into the system prompt."""
        return format_tools_section(self.definitions())

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())
