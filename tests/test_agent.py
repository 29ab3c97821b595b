"""
Tests for the Agent orchestration loop, driven by a scripted model client.
"""

import json
import logging
from typing import Any

import pytest

from codeloop.agent import DEFAULT_FINAL_MESSAGE, Agent, LoopPhase
from codeloop.config import AgentConfig, LoopConfig
from codeloop.errors import AgentRequestError, StorageError, TransportError
from codeloop.llm import ChatResponse
from codeloop.storage import InMemoryStore
from codeloop.types import Role


class MockChatClient:
    """Replays scripted replies; the last one repeats once the script runs out."""

    def __init__(self, replies: list[str]):
        self._replies = list(replies)
        self.calls: list[list[dict[str, Any]]] = []

    def chat(self, messages: list[dict[str, Any]], **options: Any) -> ChatResponse:
        self.calls.append(messages)
        if len(self._replies) > 1:
            return ChatResponse(content=self._replies.pop(0))
        return ChatResponse(content=self._replies[0])


class FailingChatClient:
    def chat(self, messages: list[dict[str, Any]], **options: Any) -> ChatResponse:
        raise TransportError("connection refused")


class BrokenStore(InMemoryStore):
    def save_conversation(self, record: dict[str, Any]) -> None:
        raise StorageError("disk full")


def decision(mode: str, *actions: tuple[str, dict]) -> str:
    return json.dumps({"mode": mode, "actions": [{"tool": t, "args": a} for t, a in actions]})


STOP = decision("sequential", ("stop", {}))


def make_agent(replies: list[str], max_iterations: int = 10, **kwargs: Any) -> Agent:
    config = AgentConfig(loop=LoopConfig(max_iterations=max_iterations))
    return Agent(config=config, llm=MockChatClient(replies), store=kwargs.pop("store", InMemoryStore()), **kwargs)


class TestProcessRequest:
    """End-to-end loop behaviour."""

    def test_write_message_stop(self) -> None:
        agent = make_agent([
            decision(
                "sequential",
                ("file", {"action": "write", "filename": "app.js", "content": "console.log(1)"}),
                ("send_message", {"message": "Created app.js"}),
                ("stop", {}),
            ),
        ])

        outcome = agent.process_request("Create app.js that logs 1")

        assert outcome.message == "Created app.js"
        assert outcome.phase == LoopPhase.STOPPED
        assert outcome.completed
        assert outcome.iterations == 1
        assert outcome.should_follow_up_title
        assert agent.workspace.read("app.js") == "console.log(1)"
        assert agent.workspace.list()[0].size == 14

        roles = [t.role for t in agent.conversation.history]
        assert roles == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.TOOL]
        assert [t.tool_call_id for t in agent.conversation.history[2:]] == ["call_1_0", "call_1_1"]

    def test_empty_actions_stop_without_dispatch(self) -> None:
        agent = make_agent([decision("sequential")])
        outcome = agent.process_request("nothing to do")

        assert outcome.message == DEFAULT_FINAL_MESSAGE
        assert outcome.phase == LoopPhase.STOPPED
        assert [t.role for t in agent.conversation.history] == [Role.USER, Role.ASSISTANT]

    def test_multiple_iterations(self) -> None:
        agent = make_agent([
            decision("parallel", ("todo", {"action": "add", "tasks": ["a", "b"]})),
            decision("sequential", ("todo", {"action": "markasdone", "task": "a"})),
            STOP,
        ])
        outcome = agent.process_request("plan it")

        assert outcome.iterations == 3
        assert [item.completed for item in agent.todos.items()] == [True, False]

    def test_parallel_results_in_one_user_turn(self) -> None:
        agent = make_agent([
            decision(
                "parallel",
                ("file", {"action": "write", "filename": "a.txt", "content": "a"}),
                ("file", {"action": "write", "filename": "b.txt", "content": "b"}),
            ),
            STOP,
        ])
        agent.process_request("two files")

        summary = [t for t in agent.conversation.history if t.content.startswith("Parallel execution results:")]
        assert len(summary) == 1
        assert summary[0].role == Role.USER
        assert agent.workspace.file_paths() == ["a.txt", "b.txt"]

    def test_iteration_ceiling_is_a_warning(self) -> None:
        agent = make_agent([decision("parallel", ("todo", {"action": "add", "tasks": "again"}))], max_iterations=3)

        outcome = agent.process_request("loop forever")

        assert outcome.phase == LoopPhase.MAX_ITERATIONS_REACHED
        assert outcome.iterations == 3
        assert "maximum iterations (3)" in outcome.warning
        assert len(agent.llm.calls) == 3

    def test_malformed_then_valid(self) -> None:
        agent = make_agent(["I think I should write a file", STOP])
        outcome = agent.process_request("hi")

        assert outcome.phase == LoopPhase.STOPPED
        contents = [t.content for t in agent.conversation.history]
        assert contents[1] == "I think I should write a file"
        assert contents[2].startswith("JSON parsing error (attempt 1/5)")
        assert contents[3] == STOP

    def test_stop_in_parallel_is_retried(self) -> None:
        agent = make_agent([decision("parallel", ("stop", {})), STOP])
        agent.process_request("hi")
        assert "only allowed in sequential mode" in agent.conversation.history[2].content

    def test_retry_exhaustion_is_fatal(self) -> None:
        store = InMemoryStore()
        agent = make_agent(["never json"], store=store)

        with pytest.raises(AgentRequestError, match="Failed after 5 attempts"):
            agent.process_request("hi")

        assert agent.phase == LoopPhase.FATAL_ERROR
        assert len(agent.llm.calls) == 5
        assert agent.conversation.has_user_turn()
        assert store.latest_conversation() is not None

    def test_transport_error_propagates(self) -> None:
        agent = Agent(config=AgentConfig(), llm=FailingChatClient(), store=InMemoryStore())
        with pytest.raises(TransportError):
            agent.process_request("hi")
        assert agent.phase == LoopPhase.FATAL_ERROR

    def test_title_follow_up_only_for_first_request(self) -> None:
        agent = make_agent([STOP])
        assert agent.process_request("first").should_follow_up_title
        assert not agent.process_request("second").should_follow_up_title

    def test_last_message_wins(self) -> None:
        agent = make_agent([
            decision(
                "sequential",
                ("send_message", {"message": "one"}),
                ("send_message", {"message": "two"}),
                ("stop", {}),
            ),
        ])
        assert agent.process_request("talk").message == "two"

    def test_messages_reset_between_requests(self) -> None:
        agent = make_agent([
            decision("sequential", ("send_message", {"message": "hello"}), ("stop", {})),
            STOP,
        ])
        agent.process_request("greet me")
        assert agent.process_request("again").message == DEFAULT_FINAL_MESSAGE


class TestOutgoingContext:
    """What the model is sent on each iteration."""

    def test_single_system_turn_with_todos(self) -> None:
        agent = make_agent([
            decision("parallel", ("todo", {"action": "add", "tasks": "write docs"})),
            STOP,
        ])
        agent.process_request("plan")

        second_call = agent.llm.calls[1]
        systems = [m for m in second_call if m["role"] == "system" and not m["content"].startswith("CONTEXT:")]
        assert len(systems) == 1
        assert second_call[0] is systems[0]
        assert "write docs" in systems[0]["content"]

    def test_context_note_lists_files(self) -> None:
        agent = make_agent([
            decision("sequential", ("file", {"action": "write", "filename": "main.py", "content": "x"})),
            STOP,
        ], project_name="demo")
        agent.process_request("make main.py")

        note = agent.llm.calls[1][-1]
        assert note["role"] == "system"
        assert "CURRENT PROJECT: demo" in note["content"]
        assert "main.py" in note["content"]
        assert all(not t.content.startswith("CONTEXT:") for t in agent.conversation.history)


class TestRecords:
    """Export and load of conversation records."""

    def test_export_load_round_trip(self) -> None:
        agent = make_agent([
            decision(
                "parallel",
                ("file", {"action": "write", "filename": "index.html", "content": "<h1>Hi</h1>"}),
                ("todo", {"action": "add", "tasks": ["style it"]}),
            ),
            STOP,
        ], project_name="site")
        agent.workspace.write("logo.png", b"\x89PNG")
        agent.process_request("start a site")
        record = agent.export_record()

        restored = make_agent([STOP])
        restored.load_record(json.loads(json.dumps(record)))

        assert restored.project_name == "site"
        assert restored.conversation.metadata.id == agent.conversation.metadata.id
        assert restored.conversation.to_messages() == agent.conversation.to_messages()
        assert [item.task for item in restored.todos.items()] == ["style it"]
        assert restored.workspace.read("index.html") == "<h1>Hi</h1>"
        assert restored.workspace.read_bytes("logo.png") == b"\x89PNG"
        assert not restored.process_request("continue").should_follow_up_title

    def test_autosave_after_request(self) -> None:
        store = InMemoryStore()
        agent = make_agent([STOP], store=store)
        agent.process_request("hi")
        saved = store.load_conversation(agent.conversation.metadata.id)
        assert saved["messages"][1]["content"] == "hi"

    def test_autosave_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        agent = make_agent([STOP], store=BrokenStore())
        with caplog.at_level(logging.ERROR, logger="codeloop.agent"):
            outcome = agent.process_request("hi")
        assert outcome.completed
        assert "Autosave failed: disk full" in caplog.text

    def test_restore_latest(self) -> None:
        store = InMemoryStore()
        first = make_agent([STOP], store=store)
        first.process_request("remember me")

        second = make_agent([STOP], store=store)
        assert second.restore_latest()
        assert second.conversation.metadata.id == first.conversation.metadata.id

    def test_reset(self) -> None:
        agent = make_agent([
            decision("sequential", ("file", {"action": "write", "filename": "a.txt", "content": "a"}), ("stop", {})),
        ])
        agent.process_request("write")
        old_id = agent.conversation.metadata.id
        agent.reset()
        assert agent.conversation.metadata.id != old_id
        assert agent.workspace.file_paths() == []
        assert len(agent.conversation) == 0


class TestProjects:
    """The agent as project controller."""

    def test_create_and_switch(self) -> None:
        agent = make_agent([STOP], project_name="first")
        agent.workspace.write("one.txt", "1")
        agent.todos.add("finish first")

        agent.create_project("second")
        assert agent.project_name == "second"
        assert agent.workspace.file_paths() == []
        assert len(agent.todos) == 0

        agent.workspace.write("two.txt", "2")
        agent.switch_project("first")
        assert agent.workspace.file_paths() == ["one.txt"]
        assert [item.task for item in agent.todos.items()] == ["finish first"]

        agent.switch_project("second")
        assert agent.workspace.file_paths() == ["two.txt"]
        assert agent.list_projects() == ["first", "second"]

    def test_create_existing_rejected(self) -> None:
        agent = make_agent([STOP], project_name="first")
        agent.create_project("second")
        with pytest.raises(ValueError):
            agent.create_project("first")

    def test_create_active_project_rejected(self) -> None:
        agent = make_agent([STOP], project_name="first")
        agent.workspace.write("keep.txt", "important")
        with pytest.raises(ValueError):
            agent.create_project("first")
        assert agent.workspace.file_paths() == ["keep.txt"]
        assert agent.project_name == "first"

    def test_switch_unknown_rejected(self) -> None:
        with pytest.raises(KeyError):
            make_agent([STOP]).switch_project("ghost")

    def test_project_tool_through_loop(self) -> None:
        agent = make_agent([
            decision("sequential", ("project", {"action": "create", "name": "game"})),
            STOP,
        ], project_name="start")
        agent.process_request("new project called game")
        assert agent.project_name == "game"
        assert agent.conversation.metadata.project_name == "game"

    def test_project_tool_cannot_recreate_active_project(self) -> None:
        agent = make_agent([
            decision("sequential", ("project", {"action": "create", "name": "start"})),
            STOP,
        ], project_name="start")
        agent.workspace.write("keep.txt", "important")
        agent.process_request("start over")

        tool_turn = agent.conversation.history[2]
        assert tool_turn.role == Role.TOOL
        assert "already exists" in tool_turn.content
        assert agent.workspace.read("keep.txt") == "important"
