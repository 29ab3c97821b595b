"""Planning tool: the agent's own todo list."""

from __future__ import annotations

from typing import Any

from codeloop.tools.base import Tool, ToolContext
from codeloop.types import ToolResult


class TodoTool(Tool):
    name = "todo"
    description = (
        "Manage your todo list. Actions: 'add' one task or a list of tasks, "
        "'delete' a task, 'markasdone' a task, 'reset' the whole list."
    )

    def parameters(self) -> dict[str, Any]:
        return {
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["add", "delete", "markasdone", "reset"],
                    "description": "Operation to perform",
                },
                "tasks": {
                    "type": ["string", "array"],
                    "items": {"type": "string"},
                    "description": "For 'add': one task or a list of tasks",
                },
                "task": {
                    "type": "string",
                    "description": "For 'delete' and 'markasdone': the exact task text",
                },
            },
            "required": ["action"],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        action = args["action"]
        todos = context.todos

        if action == "add":
            tasks = args.get("tasks", args.get("task"))
            if isinstance(tasks, str):
                tasks = [tasks]
            if not tasks or not all(isinstance(task, str) and task.strip() for task in tasks):
                return ToolResult.fail("'add' needs tasks: a non-empty string or list of strings")
            todos.add_many([task.strip() for task in tasks])
            message = f"Added {len(tasks)} task(s)"

        elif action in ("delete", "markasdone"):
            task = args.get("task")
            if not task:
                return ToolResult.fail(f"task parameter is required for '{action}' action")
            if action == "delete":
                found = todos.delete(task)
                message = f"Deleted task: {task}"
            else:
                found = todos.complete(task)
                message = f"Completed task: {task}"
            if not found:
                return ToolResult.fail(f"No matching task: {task}", todos=todos.to_list())

        else:
            todos.clear()
            message = "Todo list cleared"

        return ToolResult.ok(message, action=action, stats=todos.stats())
