"""
Agent - the orchestration loop.

One process_request() call runs a bounded loop:
1. Send the windowed conversation plus a context note to the model
2. Validate the reply as a Decision Document (retrying locally on errors)
3. Dispatch the requested tool calls, sequentially or in parallel
4. Commit every reply and result to the conversation
5. Repeat until the model stops, or the iteration ceiling is reached

The agent also owns the per-conversation state the tools act on (workspace,
todo list, sandbox) and acts as the project controller for the project tool.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from codeloop.config import AgentConfig
from codeloop.context import ContextBuilder
from codeloop.decision import Decision, DecisionParser, ToolInvocation
from codeloop.dispatch import Dispatcher
from codeloop.errors import AgentRequestError, DecisionRetryExhausted, StorageError
from codeloop.llm import ChatClient, LLMClient
from codeloop.prompts import assemble_system_prompt, format_context_note
from codeloop.sandbox import Sandbox
from codeloop.session import Conversation
from codeloop.storage import AgentStore, InMemoryStore
from codeloop.todos import TodoList
from codeloop.tools import ToolContext, ToolRegistry, create_default_registry
from codeloop.types import Role, ToolCall
from codeloop.workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_FINAL_MESSAGE = "Task completed."
RECENT_REQUESTS_KEPT = 5


class LoopPhase(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    FATAL_ERROR = "fatal_error"


@dataclass
class RequestOutcome:
    """What one process_request() call produced."""
    message: str
    should_follow_up_title: bool
    phase: LoopPhase
    iterations: int
    warning: str | None = None

    @property
    def completed(self) -> bool:
        return self.phase == LoopPhase.STOPPED


def default_project_name() -> str:
    return f"project_{datetime.now().strftime('%Y%m%d_%H%M%S')}"


class Agent:
    """
    A single-user coding agent bound to one conversation.

    Args:
        config: Agent configuration (defaults from the environment)
        llm: Model client; an LLMClient is built from config.llm if omitted
        registry: Tool registry; the default tool set if omitted
        store: Persistence for conversations and projects; in-memory if omitted
        conversation: Existing conversation to continue
        project_name: Name of the active project; generated if omitted
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        llm: ChatClient | None = None,
        registry: ToolRegistry | None = None,
        store: AgentStore | None = None,
        conversation: Conversation | None = None,
        project_name: str | None = None,
    ) -> None:
        self.config = config or AgentConfig.from_env()
        self.llm: ChatClient = llm or LLMClient(self.config.llm)
        self.registry = registry if registry is not None else create_default_registry()
        self.store: AgentStore = store or InMemoryStore()

        self.dispatcher = Dispatcher(self.registry, max_workers=self.config.loop.parallel_workers)
        self.parser = DecisionParser(max_attempts=self.config.loop.max_parse_attempts)
        self.context_builder = ContextBuilder(self.config.context)

        self.conversation = conversation if conversation is not None else Conversation(
            history_window=self.config.context.history_window,
        )
        self.workspace = Workspace(self.config.workspace)
        self.todos = TodoList()
        self.sandbox = Sandbox(self.config.sandbox)
        self.tool_context = ToolContext(
            workspace=self.workspace,
            todos=self.todos,
            sandbox=self.sandbox,
            llm=self.llm,
            projects=self,
            conversation=self.conversation,
        )

        self._project_name = (
            project_name or self.conversation.metadata.project_name or default_project_name()
        )
        self.conversation.metadata.project_name = self._project_name
        self.recent_requests: list[str] = []
        self.phase = LoopPhase.STOPPED

    # =========================================================================
    # Orchestration loop
    # =========================================================================

    def process_request(self, user_message: str) -> RequestOutcome:
        """
        Run the loop for one user request.

        Raises:
            AgentRequestError: when the model never produced a valid Decision
                Document within the retry limit
            TransportError: when the model cannot be reached
        """
        should_follow_up_title = not self.conversation.has_user_turn()

        self.tool_context.begin_request(user_message)
        self.conversation.append(Role.USER, user_message)
        self.recent_requests.append(user_message)
        del self.recent_requests[:-RECENT_REQUESTS_KEPT]
        self.refresh_system_prompt()

        max_iterations = self.config.loop.max_iterations
        iteration = 0
        warning: str | None = None

        try:
            while True:
                if iteration >= max_iterations:
                    self.phase = LoopPhase.MAX_ITERATIONS_REACHED
                    warning = f"Reached maximum iterations ({max_iterations}) without a stop action"
                    logger.warning(warning)
                    break

                iteration += 1
                logger.info(f"Iteration {iteration}/{max_iterations}")

                self.phase = LoopPhase.AWAITING_MODEL
                raw = self._request_model()
                self.conversation.append(Role.ASSISTANT, raw)

                self.phase = LoopPhase.VALIDATING
                try:
                    decision = self.parser.parse_with_retry(raw, self.conversation, self._request_model)
                except DecisionRetryExhausted as e:
                    self.phase = LoopPhase.FATAL_ERROR
                    raise AgentRequestError(str(e)) from e

                self.phase = LoopPhase.DISPATCHING
                self._dispatch(decision, iteration)
                self.refresh_system_prompt()

                if decision.should_stop:
                    self.phase = LoopPhase.STOPPED
                    logger.info(f"Stopped after {iteration} iteration(s)")
                    break
        except Exception:
            self.phase = LoopPhase.FATAL_ERROR
            raise
        finally:
            self.autosave()

        messages = self.tool_context.messages_sent
        return RequestOutcome(
            message=messages[-1] if messages else DEFAULT_FINAL_MESSAGE,
            should_follow_up_title=should_follow_up_title,
            phase=self.phase,
            iterations=iteration,
            warning=warning,
        )

    def refresh_system_prompt(self) -> None:
        """Rebuild the system slot from the base prompt, todos and tool docs."""
        self.conversation.set_system(
            assemble_system_prompt(self.todos.items(), self.registry.definitions())
        )

    def context_note(self) -> str:
        return format_context_note(
            self._project_name,
            self.workspace.file_paths(),
            self.recent_requests,
            self.tool_context.last_execution,
        )

    def _request_model(self) -> str:
        built = self.context_builder.build(self.conversation, note=self.context_note())
        response = self.llm.chat(built.messages)
        return response.content

    def _dispatch(self, decision: Decision, iteration: int) -> None:
        invocations: list[ToolInvocation] = decision.invocations
        calls = [
            ToolCall(id=f"call_{iteration}_{i}", name=inv.tool, arguments=dict(inv.args))
            for i, inv in enumerate(invocations)
        ]
        if decision.reasoning:
            logger.debug(f"Reasoning: {decision.reasoning}")
        self.dispatcher.dispatch(decision.mode, calls, self.tool_context, self.conversation)

    # =========================================================================
    # Records and persistence
    # =========================================================================

    def export_record(self) -> dict[str, Any]:
        """The full conversation record: metadata, turns, todos and files."""
        record = self.conversation.to_record()
        record["metadata"]["project_name"] = self._project_name
        record["todos"] = self.todos.to_list()
        record["files"] = self.workspace.export_snapshot()
        return record

    def load_record(self, record: dict[str, Any]) -> None:
        """Replace the conversation, todos and workspace with a stored record."""
        conversation = Conversation.from_record(
            record, history_window=self.config.context.history_window
        )
        self.conversation = conversation
        self.tool_context.conversation = conversation
        self.todos.load(record.get("todos") or [])
        self.workspace.reset()
        self.workspace.import_snapshot(record.get("files") or {})
        self._project_name = conversation.metadata.project_name or self._project_name
        self.conversation.metadata.project_name = self._project_name
        self.recent_requests = [
            turn.content for turn in conversation.history if turn.role == Role.USER
        ][-RECENT_REQUESTS_KEPT:]
        logger.info(f"Loaded conversation {conversation.metadata.id}")

    def autosave(self) -> None:
        """Save the conversation record, logging (not raising) on failure."""
        if not self.config.storage.autosave:
            return
        try:
            self.store.save_conversation(self.export_record())
        except StorageError as e:
            logger.error(f"Autosave failed: {e}")

    def restore_latest(self) -> bool:
        """Load the most recently saved conversation, if there is one."""
        record = self.store.latest_conversation()
        if record is None:
            return False
        self.load_record(record)
        return True

    def reset(self) -> None:
        """Start a fresh conversation in an empty workspace."""
        self.conversation = Conversation(history_window=self.config.context.history_window)
        self.tool_context.conversation = self.conversation
        self.workspace.reset()
        self.todos.clear()
        self.recent_requests = []
        self._project_name = default_project_name()
        self.conversation.metadata.project_name = self._project_name
        self.tool_context.files_touched = []
        self.tool_context.last_execution = None

    def set_title(self, title: str) -> None:
        self.conversation.metadata.name = title
        self.autosave()

    # =========================================================================
    # Project controller
    # =========================================================================

    @property
    def project_name(self) -> str:
        return self._project_name

    def project_snapshot(self) -> dict[str, Any]:
        return {
            "name": self._project_name,
            "files": self.workspace.export_snapshot(),
            "todos": self.todos.to_list(),
            "saved_at": datetime.now().isoformat(),
        }

    def create_project(self, name: str) -> None:
        """
        Save the current project, then start an empty one called name.

        Raises:
            ValueError: if a project with that name already exists,
                including the active one
        """
        if name in self.list_projects():
            raise ValueError(f"Project '{name}' already exists")
        self.store.save_project(self._project_name, self.project_snapshot())
        self.workspace.reset()
        self.todos.clear()
        self.tool_context.files_touched = []
        self.tool_context.last_execution = None
        self._set_project(name)
        self.store.save_project(name, self.project_snapshot())
        logger.info(f"Created project {name}")

    def switch_project(self, name: str) -> None:
        """
        Save the current project, then load the saved project called name.

        Raises:
            KeyError: if no project with that name has been saved
        """
        if name == self._project_name:
            return
        snapshot = self.store.load_project(name)
        if snapshot is None:
            raise KeyError(f"Project '{name}' not found")
        self.store.save_project(self._project_name, self.project_snapshot())
        self.workspace.reset()
        self.workspace.import_snapshot(snapshot.get("files") or {})
        self.todos.load(snapshot.get("todos") or [])
        self.tool_context.files_touched = []
        self.tool_context.last_execution = None
        self._set_project(name)
        logger.info(f"Switched to project {name}")

    def list_projects(self) -> list[str]:
        names = set(self.store.list_projects())
        names.add(self._project_name)
        return sorted(names)

    def _set_project(self, name: str) -> None:
        self._project_name = name
        self.conversation.metadata.project_name = name

    def close(self) -> None:
        self.store.close()
        close = getattr(self.llm, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "Agent":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = [
    "Agent",
    "DEFAULT_FINAL_MESSAGE",
    "LoopPhase",
    "RequestOutcome",
]
