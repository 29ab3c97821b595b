"""
Dispatch of one Decision Document's tool calls.

Two disciplines:
- parallel: every call is submitted to a thread pool at once and all of
  them are awaited. One failure never cancels a sibling. Results come back
  in call order and are recorded as ONE user turn summarizing every outcome.
- sequential: calls run one at a time in order, and each result is
  appended as its own tool turn before the next call starts.

Calls within one batch never get a model turn between them.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from codeloop.decision import ExecutionMode
from codeloop.session import Conversation
from codeloop.tools.base import ToolContext
from codeloop.tools.registry import ToolRegistry
from codeloop.types import Role, ToolCall, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
MAX_RESULT_CHARS = 4000


def render_result(result: ToolResult) -> str:
    """Serialize a result for the conversation, capped in length."""
    text = json.dumps(result.to_dict(), default=str, ensure_ascii=False)
    if len(text) > MAX_RESULT_CHARS:
        text = text[:MAX_RESULT_CHARS] + f"... [truncated {len(text) - MAX_RESULT_CHARS} chars]"
    return text


def summarize_parallel(calls: list[ToolCall], results: list[ToolResult]) -> str:
    """One-turn summary of a parallel batch: 'tool: outcome, tool: outcome, ...'."""
    parts = [f"{call.name}: {render_result(result)}" for call, result in zip(calls, results, strict=True)]
    return "Parallel execution results: " + ", ".join(parts)


@dataclass
class DispatchReport:
    """What one dispatch did, in call order."""
    mode: ExecutionMode
    calls: list[ToolCall] = field(default_factory=list)
    results: list[ToolResult] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return sum(1 for result in self.results if not result.success)


class Dispatcher:
    """Runs tool calls through the registry and records their results."""

    def __init__(self, registry: ToolRegistry, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self.registry = registry
        self.max_workers = max(1, max_workers)

    def dispatch(
        self,
        mode: ExecutionMode,
        calls: list[ToolCall],
        context: ToolContext,
        conversation: Conversation,
    ) -> DispatchReport:
        """Execute calls per mode and append their result turns to conversation."""
        report = DispatchReport(mode=mode, calls=list(calls))
        if not calls:
            return report

        logger.info(f"Dispatching {len(calls)} call(s) in {mode.value} mode")
        if mode == ExecutionMode.PARALLEL:
            report.results = self.run_parallel(calls, context)
            conversation.append(Role.USER, summarize_parallel(calls, report.results))
        else:
            for call in calls:
                result = self._execute_one(call, context)
                report.results.append(result)
                conversation.append(Role.TOOL, render_result(result), tool_call_id=call.id)

        if report.failures:
            logger.info(f"{report.failures}/{len(calls)} call(s) failed")
        return report

    def run_parallel(self, calls: list[ToolCall], context: ToolContext) -> list[ToolResult]:
        """Execute calls concurrently; results are returned in input order."""
        results: list[ToolResult | None] = [None] * len(calls)

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(calls))) as executor:
            future_to_index = {
                executor.submit(self._execute_one, call, context): i
                for i, call in enumerate(calls)
            }

            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"Parallel call {calls[index].name} raised: {e}")
                    result = ToolResult.fail(f"{calls[index].name}: {e}")
                    result.tool_call_id = calls[index].id
                    results[index] = result

        return results  # type: ignore[return-value]

    def _execute_one(self, call: ToolCall, context: ToolContext) -> ToolResult:
        return self.registry.execute(call, context)
