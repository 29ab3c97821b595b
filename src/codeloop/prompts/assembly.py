"""
Prompt assembly.

Key principle: stable prefix, then dynamic content.

The Markdown modules next to this file hold the stable text (identity,
loop protocol, response format, examples). The todo snapshot and the tool
documentation are rendered per iteration and placed after the stable
prefix, so providers that cache prompt prefixes keep hitting the cache.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from codeloop.types import TodoItem

PROMPT_DIR = Path(__file__).parent

SECTION_SEPARATOR = "\n\n---\n\n"

STABLE_MODULES = (
    "core/identity",
    "control/protocol",
    "control/response_format",
    "control/examples",
)


def load_module(name: str) -> str:
    """
    Load a prompt module by name.

    Args:
        name: Module path relative to the prompts directory (e.g., "core/identity")

    Returns:
        Contents of the markdown file
    """
    path = PROMPT_DIR / f"{name}.md"
    if not path.exists():
        raise FileNotFoundError(f"Prompt module not found: {path}")
    return path.read_text(encoding="utf-8").strip()


def get_stable_prefix() -> str:
    """The part of the system prompt that never changes between iterations."""
    return SECTION_SEPARATOR.join(load_module(name) for name in STABLE_MODULES)


def format_todo_list(todos: list[TodoItem]) -> str:
    """Render the todo snapshot injected into the system turn."""
    if not todos:
        return (
            "## Your current todo list\n\n"
            "*Your todo list is empty. Add todos as needed to track your work.*"
        )

    completed = sum(1 for todo in todos if todo.completed)
    lines = []
    for todo in todos:
        if todo.completed:
            lines.append(f"[x] ~~{todo.task}~~")
        else:
            lines.append(f"[ ] **{todo.task}**")

    return (
        f"## Your current todo list ({completed}/{len(todos)} completed, "
        f"{len(todos) - completed} pending)\n\n"
        + "\n".join(lines)
        + "\n\n*Update this list as you work: mark tasks as done, add new ones, delete obsolete ones.*"
    )


def format_tools_section(definitions: list[dict[str, Any]]) -> str:
    """
    Render tool documentation from OpenAI-style function definitions.

    Each tool gets its description and its parameter schema as JSON.
    """
    sections = [
        "# Available tools",
        "",
        "These are the only tools you can name in `actions`.",
        "",
    ]
    for definition in definitions:
        function = definition["function"]
        sections.append(f"## {function['name']}")
        sections.append(f"**Description**: {function['description']}")
        sections.append("**Parameters**:")
        sections.append("```json")
        sections.append(json.dumps(function["parameters"], indent=2))
        sections.append("```")
        sections.append("")
    return "\n".join(sections).strip()


def assemble_system_prompt(
    todos: list[TodoItem],
    tool_definitions: list[dict[str, Any]],
) -> str:
    """
    Assemble the full system prompt.

    Structure:
    1. Stable prefix (identity, protocol, response format, examples)
    2. Tool documentation
    3. Todo snapshot (changes every iteration)
    """
    return SECTION_SEPARATOR.join([
        get_stable_prefix(),
        format_tools_section(tool_definitions),
        format_todo_list(todos),
    ])


def format_retry_message(issues: list[str], attempt: int, max_attempts: int) -> str:
    """Corrective user turn sent after an invalid Decision Document."""
    problems = "\n".join(f"- {issue}" for issue in issues) or "- unknown error"
    return f"""JSON parsing error (attempt {attempt}/{max_attempts}).

Your last response was not a valid Decision Document:
{problems}

Respond again with valid JSON in exactly this format:
{{
  "mode": "parallel" | "sequential",
  "actions": [
    {{ "tool": "tool_name", "args": {{ "param": "value" }} }}
  ]
}}

Remember:
- No Markdown code fences, no text around the JSON
- mode must be "parallel" or "sequential"
- every action needs "tool" and "args" (args is an object)
- no other top-level keys besides "mode", "actions" and "reasoning"
- stop: sequential mode only, alone or last

Try again:"""


def format_context_note(
    project_name: str | None,
    files: list[str],
    recent_requests: list[str],
    last_execution: str | None = None,
) -> str:
    """
    Ephemeral context appended to the outgoing messages.

    Never stored in the conversation. Returns an empty string when there is
    nothing to say.
    """
    parts = []
    if project_name:
        parts.append(f"CURRENT PROJECT: {project_name}")
    if files:
        parts.append(f"FILES IN WORKSPACE: {', '.join(files)}")
    if last_execution:
        parts.append(f"LAST EXECUTION:\n{last_execution}")
    if recent_requests:
        parts.append("RECENT TASKS:\n" + "\n".join(recent_requests[-3:]))

    if not parts:
        return ""
    return "CONTEXT:\n" + "\n\n".join(parts)


def build_send_message_prompt(
    user_request: str,
    recent_actions: list[dict[str, Any]],
    todos: list[TodoItem],
    conversation: list[dict[str, Any]],
) -> list[dict[str, str]]:
    """Messages for the dedicated call that writes a user-facing update."""
    if todos:
        todo_section = "## Current todo list\n" + "\n".join(
            f"{i}. {'[x]' if todo.completed else '[ ]'} {todo.task}"
            for i, todo in enumerate(todos, start=1)
        )
    else:
        todo_section = "Todo list is empty."

    if recent_actions:
        actions_section = "## Actions just executed\n" + "\n".join(
            f"- {action['tool']}: {json.dumps(action['result'], default=str)[:200]}"
            for action in recent_actions
        )
    else:
        actions_section = "No recent actions."

    conversation_section = "## Recent conversation\n" + "\n".join(
        f"{message['role']}: {(message.get('content') or '')[:200]}"
        for message in conversation[-5:]
    )

    context = "\n\n".join([
        f"## User request\n{user_request or '(none)'}",
        actions_section,
        todo_section,
        conversation_section,
    ])
    return [
        {"role": "system", "content": load_module("generation/send_message")},
        {"role": "user", "content": context},
    ]


def build_code_generation_prompt(
    filename: str,
    instructions: str,
    context: str = "",
    existing_content: str | None = None,
) -> list[dict[str, str]]:
    """Messages for the dedicated call that writes one file's contents."""
    task = [f"**File**: {filename}", f"**Instructions**: {instructions}"]
    if existing_content is not None:
        task.append(f"**Current content**:\n{existing_content}")
    if context:
        task.append(f"**Conversation context**:\n{context}")
    return [
        {"role": "system", "content": load_module("generation/code")},
        {"role": "user", "content": "\n\n".join(task)},
    ]


def build_title_prompt(first_message: str) -> list[dict[str, str]]:
    """Messages for the call that names a conversation."""
    return [
        {"role": "system", "content": load_module("generation/title")},
        {"role": "user", "content": first_message},
    ]
