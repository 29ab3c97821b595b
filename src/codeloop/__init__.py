"""
codeloop - a single-user coding agent.

The agent turns natural-language requests into a bounded loop of tool calls
against an in-memory workspace and a sandboxed Python runner, driven by
Decision Documents returned by an OpenAI-compatible model.
"""

from codeloop.agent import Agent, LoopPhase, RequestOutcome
from codeloop.config import AgentConfig
from codeloop.decision import Decision, ExecutionMode, parse_decision
from codeloop.errors import CodeloopError
from codeloop.llm import ChatResponse, LLMClient
from codeloop.session import Conversation
from codeloop.workspace import Workspace

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentConfig",
    "ChatResponse",
    "CodeloopError",
    "Conversation",
    "Decision",
    "ExecutionMode",
    "LLMClient",
    "LoopPhase",
    "RequestOutcome",
    "Workspace",
    "parse_decision",
]
