"""File tool: read, write, edit, list and delete workspace files."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from codeloop.errors import TransportError, WorkspaceError
from codeloop.prompts import build_code_generation_prompt
from codeloop.tools.base import Tool, ToolContext
from codeloop.types import ToolResult

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200

_FENCE_RE = re.compile(r"```[\w+-]*\s*\n(.*?)\n?```", re.DOTALL)


def parse_generated_content(raw: str) -> str:
    """
    Pull file contents out of a generation reply.

    The reply should be {"filename": ..., "content": ...}. Replies that
    ignore the format fall back to the body of a code fence, then to the
    raw text.
    """
    text = raw.strip()
    start = text.find("{")
    if start != -1:
        try:
            data, _ = json.JSONDecoder().raw_decode(text, start)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("content"), str):
            return data["content"]

    match = _FENCE_RE.search(text)
    if match:
        return match.group(1)
    return text


class FileTool(Tool):
    """CRUD over the workspace, with model-generated writes and edits."""

    name = "file"
    description = (
        "Manage workspace files. Actions: 'read' a file, 'write' a new file "
        "(either literal 'content' or high-level 'instructions' for the code "
        "generator), 'edit' an existing file from 'instructions', 'list' all "
        "files, 'delete' a file."
    )

    def parameters(self) -> dict[str, Any]:
        return {
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["read", "write", "edit", "list", "delete"],
                    "description": "Operation to perform",
                },
                "filename": {
                    "type": "string",
                    "description": "Workspace path, with extension. Required for read, write, edit and delete",
                },
                "content": {
                    "type": "string",
                    "description": "Literal file contents for 'write'. Use for short or exact files",
                },
                "instructions": {
                    "type": "string",
                    "description": (
                        "High-level description of what to generate ('write') or change ('edit'). "
                        "Never put code here; the generator writes the code"
                    ),
                },
                "directory": {
                    "type": "string",
                    "description": "Directory to list (default: whole workspace)",
                },
            },
            "required": ["action"],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        action = args["action"]
        if action == "list":
            return self._list(args.get("directory") or "", context)

        filename = args.get("filename")
        if not filename:
            return ToolResult.fail(f"filename parameter is required for '{action}' action")

        try:
            if action == "read":
                return self._read(filename, context)
            if action == "write":
                return self._write(filename, args, context)
            if action == "edit":
                return self._edit(filename, args.get("instructions"), context)
            if action == "delete":
                context.workspace.delete(filename)
                return ToolResult.ok(f"File '{filename}' deleted", action="delete", filename=filename)
        except WorkspaceError as e:
            logger.info(f"file {action} {filename} rejected: {e}")
            return ToolResult.fail(str(e), action=action, filename=filename)
        except TransportError as e:
            logger.warning(f"Code generation for {filename} failed: {e}")
            return ToolResult.fail(f"Code generation failed: {e}", action=action, filename=filename)

        return ToolResult.fail(f"Unknown action: {action}")

    def _read(self, filename: str, context: ToolContext) -> ToolResult:
        content = context.workspace.read(filename)
        size = len(context.workspace.read_bytes(filename))
        return ToolResult.ok(
            action="read",
            filename=filename,
            content=content,
            size=size,
            lines=content.count("\n") + 1,
        )

    def _write(self, filename: str, args: dict[str, Any], context: ToolContext) -> ToolResult:
        content = args.get("content")
        instructions = args.get("instructions")
        generated = False

        if content is None:
            if not instructions:
                return ToolResult.fail("'write' needs either content or instructions")
            content = self._generate(filename, instructions, context)
            generated = True
            if not content.strip():
                return ToolResult.fail("Code generation returned an empty file")

        info = context.workspace.write(filename, content)
        context.note_file(info.path)
        return ToolResult.ok(
            f"Wrote {info.path} ({info.size} bytes)",
            action="write",
            filename=info.path,
            size=info.size,
            lines=content.count("\n") + 1,
            generated=generated,
            preview=content[:PREVIEW_CHARS],
        )

    def _edit(self, filename: str, instructions: str | None, context: ToolContext) -> ToolResult:
        if not instructions:
            return ToolResult.fail("instructions parameter is required for 'edit' action")

        current = context.workspace.read(filename)
        content = self._generate(filename, instructions, context, existing_content=current)
        if not content.strip():
            return ToolResult.fail("Code generation returned an empty file")

        info = context.workspace.write(filename, content)
        context.note_file(info.path)
        return ToolResult.ok(
            f"Edited {info.path} ({info.size} bytes)",
            action="edit",
            filename=info.path,
            size=info.size,
            lines=content.count("\n") + 1,
            preview=content[:PREVIEW_CHARS],
        )

    def _list(self, directory: str, context: ToolContext) -> ToolResult:
        entries = context.workspace.list(directory)
        return ToolResult.ok(
            action="list",
            files=[entry.to_dict() for entry in entries],
            count=sum(1 for entry in entries if not entry.is_directory),
        )

    def _generate(
        self,
        filename: str,
        instructions: str,
        context: ToolContext,
        existing_content: str | None = None,
    ) -> str:
        recent = ""
        if context.conversation is not None:
            recent = "\n".join(
                f"{turn.role.value}: {turn.content[:300]}"
                for turn in context.conversation.history[-5:]
            )
        messages = build_code_generation_prompt(filename, instructions, recent, existing_content)
        logger.info(f"Generating contents for {filename}")
        return parse_generated_content(context.complete(messages))
