"""Prompt templates for the codeloop agent."""

from pathlib import Path

from codeloop.prompts.assembly import (
    assemble_system_prompt,
    build_code_generation_prompt,
    build_send_message_prompt,
    build_title_prompt,
    format_context_note,
    format_retry_message,
    format_todo_list,
    format_tools_section,
    get_stable_prefix,
    load_module,
)

PROMPTS_DIR = Path(__file__).parent

__all__ = [
    "PROMPTS_DIR",
    "assemble_system_prompt",
    "build_code_generation_prompt",
    "build_send_message_prompt",
    "build_title_prompt",
    "format_context_note",
    "format_retry_message",
    "format_todo_list",
    "format_tools_section",
    "get_stable_prefix",
    "load_module",
]
