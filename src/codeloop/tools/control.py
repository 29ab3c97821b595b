"""Communication and control tools: send_message and stop."""

from __future__ import annotations

import logging
from typing import Any

from codeloop.decision import STOP_TOOL
from codeloop.prompts import build_send_message_prompt
from codeloop.tools.base import Tool, ToolContext
from codeloop.types import ToolResult

logger = logging.getLogger(__name__)


class SendMessageTool(Tool):
    """
    Tell the user something.

    By default the text is written by a dedicated model call that sees the
    request, the todo list and the actions just executed. A literal
    'message' argument skips that call.
    """

    name = "send_message"
    description = (
        "Communicate with the user: greetings, progress updates, explanations, "
        "questions. The message is written for you from the current context; "
        "pass 'message' only to send exact text."
    )

    def parameters(self) -> dict[str, Any]:
        return {
            "properties": {
                "message": {
                    "type": "string",
                    "description": "Optional exact text to send instead of a generated message",
                },
            },
            "required": [],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        text = (args.get("message") or "").strip()
        if not text:
            conversation = context.conversation.to_messages() if context.conversation else []
            messages = build_send_message_prompt(
                user_request=context.request_text,
                recent_actions=list(context.recent_actions),
                todos=context.todos.items(),
                conversation=[m for m in conversation if m["role"] != "system"],
            )
            text = context.complete(messages).strip()
            if not text:
                return ToolResult.fail("Message generation returned nothing")

        context.messages_sent.append(text)
        logger.debug(f"send_message: {text[:80]}")
        return ToolResult.ok(text)


class StopTool(Tool):
    """
    The stop sentinel.

    Documented like any tool so the model knows it exists, but the decision
    validator turns it into a StopSignal and it is never dispatched.
    """

    name = STOP_TOOL
    description = (
        "End the loop and hand control back to the user. Sequential mode only, "
        "alone or as the last action."
    )

    def parameters(self) -> dict[str, Any]:
        return {"properties": {}, "required": []}

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        return ToolResult.ok("Stopping")
