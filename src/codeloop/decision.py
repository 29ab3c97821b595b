"""
Decision Document - the structured answer the model must give each iteration.

Wire format:

    {"mode": "parallel" | "sequential",
     "actions": [{"tool": "<name>", "args": {...}}],
     "reasoning": "<optional text>"}

The wire keeps stop as an ordinary-looking action. At this boundary it is
turned into a tagged union (ToolInvocation | StopSignal) so dispatch never
compares tool names against "stop".

Validation is strict: unknown keys are rejected and the stop placement
rule is checked here, not at dispatch time. stop is only legal in
sequential mode, alone or last.

Malformed output is recovered by parse_with_retry: the model sees its own
bad answer plus a corrective turn naming what was wrong, up to a fixed
number of attempts.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from codeloop.errors import DecisionRetryExhausted, SchemaValidationError
from codeloop.prompts import format_retry_message
from codeloop.session import Conversation
from codeloop.types import Role

logger = logging.getLogger(__name__)

STOP_TOOL = "stop"
DEFAULT_MAX_ATTEMPTS = 5

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


class ExecutionMode(str, Enum):
    """How the actions of one Decision Document are dispatched."""
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


# =============================================================================
# Wire schema
# =============================================================================

class ActionModel(BaseModel):
    """One {tool, args} entry as it appears on the wire."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tool: str = Field(min_length=1)
    args: dict[str, Any]


class DecisionModel(BaseModel):
    """The Decision Document as it appears on the wire."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["parallel", "sequential"]
    actions: list[ActionModel]
    reasoning: str | None = None

    @model_validator(mode="after")
    def check_stop_placement(self) -> DecisionModel:
        stops = [i for i, action in enumerate(self.actions) if action.tool == STOP_TOOL]
        if not stops:
            return self
        if self.mode != ExecutionMode.SEQUENTIAL.value:
            raise ValueError("stop tool is only allowed in sequential mode")
        if len(stops) > 1:
            raise ValueError("stop tool may appear at most once")
        if stops[0] != len(self.actions) - 1:
            raise ValueError("stop tool must be alone or the last action")
        return self


# =============================================================================
# Validated form
# =============================================================================

@dataclass(frozen=True)
class ToolInvocation:
    """A real tool call requested by the model."""
    tool: str
    args: dict[str, Any]


@dataclass(frozen=True)
class StopSignal:
    """The stop sentinel. Ends the loop once the current dispatch completes."""
    pass


Action = ToolInvocation | StopSignal


@dataclass(frozen=True)
class Decision:
    """A validated Decision Document."""
    mode: ExecutionMode
    actions: tuple[Action, ...]
    reasoning: str | None = None

    @property
    def invocations(self) -> list[ToolInvocation]:
        """Actions to dispatch, in order, without the stop sentinel."""
        return [action for action in self.actions if isinstance(action, ToolInvocation)]

    @property
    def should_stop(self) -> bool:
        """True for an empty action list or one containing the stop sentinel."""
        if not self.actions:
            return True
        return any(isinstance(action, StopSignal) for action in self.actions)


@dataclass
class RetryState:
    """Bookkeeping for one parse_with_retry chain."""
    attempt: int = 0
    last_error: str = ""


# =============================================================================
# Extraction and validation
# =============================================================================

def strip_code_fences(text: str) -> str:
    """Return the body of the first Markdown code fence, or text unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json(text: str) -> dict[str, Any]:
    """
    Locate and decode the JSON object in raw model output.

    Raises:
        SchemaValidationError: if there is no decodable JSON object
    """
    body = strip_code_fences(text)
    start = body.find("{")
    if start == -1:
        raise SchemaValidationError(["Response does not contain a JSON object"])

    decoder = json.JSONDecoder()
    try:
        value, _ = decoder.raw_decode(body, start)
    except json.JSONDecodeError as first_error:
        end = body.rfind("}")
        try:
            value = json.loads(body[start:end + 1]) if end > start else None
        except json.JSONDecodeError:
            value = None
        if value is None:
            raise SchemaValidationError([
                f"Invalid JSON: {first_error.msg} (line {first_error.lineno}, column {first_error.colno})"
            ]) from first_error

    if not isinstance(value, dict):
        raise SchemaValidationError(["Top-level JSON value must be an object"])
    return value


def _format_issues(error: ValidationError) -> list[str]:
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        issues.append(f"{location}: {message}" if location else message)
    return issues


def validate_decision(data: dict[str, Any]) -> Decision:
    """
    Validate a decoded document and convert it to a Decision.

    Raises:
        SchemaValidationError: listing every violated rule
    """
    try:
        model = DecisionModel.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(_format_issues(e)) from e

    actions: list[Action] = []
    for action in model.actions:
        if action.tool == STOP_TOOL:
            actions.append(StopSignal())
        else:
            actions.append(ToolInvocation(tool=action.tool, args=dict(action.args)))

    return Decision(
        mode=ExecutionMode(model.mode),
        actions=tuple(actions),
        reasoning=model.reasoning,
    )


def parse_decision(text: str) -> Decision:
    """Extract and validate a Decision Document from raw model output."""
    return validate_decision(extract_json(text))


# =============================================================================
# Retry protocol
# =============================================================================

class DecisionParser:
    """
    Parses model output, asking the model to correct itself on failure.

    The initial output counts as the first attempt, so at most
    max_attempts model outputs are ever examined for one chain.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    def parse_with_retry(
        self,
        raw: str,
        conversation: Conversation,
        request_model: Callable[[], str],
    ) -> Decision:
        """
        Parse raw, retrying through request_model until valid.

        Each failed attempt appends a corrective user turn, then the
        model's new answer as an assistant turn, to conversation. Both
        stay in the conversation whatever the final outcome.

        Args:
            raw: The model output already appended to the conversation
            conversation: The conversation the retry turns are appended to
            request_model: Sends the current context to the model and
                returns its raw text

        Raises:
            DecisionRetryExhausted: after max_attempts invalid outputs
            TransportError: if a retry call cannot reach the model
        """
        state = RetryState()
        current = raw

        while True:
            state.attempt += 1
            try:
                decision = parse_decision(current)
            except SchemaValidationError as e:
                state.last_error = str(e)
                if state.attempt >= self.max_attempts:
                    logger.error(f"Max parse attempts ({self.max_attempts}) reached, giving up")
                    raise DecisionRetryExhausted(e.issues, state.attempt) from e

                logger.warning(
                    f"Decision parsing failed, retry {state.attempt}/{self.max_attempts}: {state.last_error}"
                )
                conversation.append(
                    Role.USER,
                    format_retry_message(e.issues, state.attempt, self.max_attempts),
                )
                current = request_model()
                conversation.append(Role.ASSISTANT, current)
                continue

            if state.attempt > 1:
                logger.info(f"Decision parsed successfully after {state.attempt} attempts")
            return decision
