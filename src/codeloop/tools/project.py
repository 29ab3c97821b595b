"""Project tool: create, switch between and list saved projects."""

from __future__ import annotations

import logging
from typing import Any

from codeloop.errors import StorageError
from codeloop.tools.base import Tool, ToolContext
from codeloop.types import ToolResult

logger = logging.getLogger(__name__)


class ProjectTool(Tool):
    name = "project"
    description = (
        "Manage projects. 'create' saves the current project and starts an "
        "empty one, 'switch' loads a saved project, 'list' shows saved projects."
    )

    def parameters(self) -> dict[str, Any]:
        return {
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["create", "switch", "list"],
                    "description": "Operation to perform",
                },
                "name": {
                    "type": "string",
                    "description": "Project name (required for 'create' and 'switch'), e.g. 'todo-app'",
                },
            },
            "required": ["action"],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        projects = context.projects
        if projects is None:
            return ToolResult.fail("Project management is not available in this session")

        action = args["action"]
        if action == "list":
            names = projects.list_projects()
            return ToolResult.ok(
                action="list",
                projects=names,
                count=len(names),
                current=projects.project_name,
            )

        name = (args.get("name") or "").strip()
        if not name:
            return ToolResult.fail(f"name parameter is required for '{action}' action")

        try:
            if action == "create":
                projects.create_project(name)
                message = f"Project '{name}' created and activated"
            else:
                projects.switch_project(name)
                message = f"Switched to project '{name}'"
        except (KeyError, ValueError, StorageError) as e:
            logger.info(f"project {action} {name} failed: {e}")
            return ToolResult.fail(str(e).strip("'\""), action=action, project=name)

        return ToolResult.ok(message, action=action, project=name)
