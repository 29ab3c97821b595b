"""Code execution tool: runs a workspace .py file in the sandbox."""

from __future__ import annotations

import logging
from typing import Any

from codeloop.errors import ExecutionRejected, ExecutionRuntimeError, ExecutionTimeoutError, WorkspaceError
from codeloop.tools.base import Tool, ToolContext
from codeloop.types import ToolResult

logger = logging.getLogger(__name__)

RUNNABLE_EXTENSIONS = (".py",)


class ExecuteCodeTool(Tool):
    name = "execute_code"
    description = (
        "Run a Python (.py) file from the workspace in the sandbox "
        "(5 second timeout, no imports, no file or network access). "
        "Returns its output and elapsed time."
    )

    def parameters(self) -> dict[str, Any]:
        return {
            "properties": {
                "filename": {
                    "type": "string",
                    "description": "Workspace path of the .py file to run",
                },
            },
            "required": ["filename"],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        filename = args["filename"]
        if not filename.lower().endswith(RUNNABLE_EXTENSIONS):
            return ToolResult.fail(
                f"Only Python files can be executed, got {filename}",
                filename=filename,
            )

        try:
            source = context.workspace.read(filename)
        except WorkspaceError as e:
            return ToolResult.fail(str(e), filename=filename)

        try:
            run = context.sandbox.run(source)
        except ExecutionRejected as e:
            result = ToolResult.fail(str(e), filename=filename)
        except ExecutionTimeoutError as e:
            result = ToolResult.fail(str(e), filename=filename, elapsed_ms=e.elapsed_ms)
        except ExecutionRuntimeError as e:
            result = ToolResult.fail(str(e), filename=filename, output=e.output, elapsed_ms=e.elapsed_ms)
        else:
            result = ToolResult.ok(
                f"Ran {filename} in {run.elapsed_ms}ms",
                filename=filename,
                output=run.output,
                elapsed_ms=run.elapsed_ms,
            )

        if result.success:
            context.last_execution = f"{filename}: {result.payload['output'][:500]}"
        else:
            context.last_execution = f"{filename} failed: {result.error}"
        return result
