"""
Tests for the command-line helpers.
"""

import json
from pathlib import Path
from typing import Any

import pytest

from codeloop.agent import Agent
from codeloop.cli import build_config, build_parser, format_files, format_todos, run_request
from codeloop.config import AgentConfig
from codeloop.llm import ChatResponse
from codeloop.storage import InMemoryStore


class ScriptedChatClient:
    def __init__(self, replies: list[str]):
        self._replies = list(replies)

    def chat(self, messages: list[dict[str, Any]], **options: Any) -> ChatResponse:
        return ChatResponse(content=self._replies.pop(0))


class TestArguments:
    """Tests for argument parsing."""

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.delenv("CODELOOP_LLM_MODEL", raising=False)
        args = build_parser().parse_args([
            "--model", "x/y", "--max-iterations", "3", "--storage-path", str(tmp_path / "s.db"), "hello", "there",
        ])
        config = build_config(args)
        assert config.llm.model == "x/y"
        assert config.loop.max_iterations == 3
        assert config.storage.path == tmp_path / "s.db"
        assert args.message == ["hello", "there"]
        assert not args.no_restore

    def test_no_message_means_repl(self) -> None:
        assert build_parser().parse_args(["--no-restore"]).message == []


class TestOutput:
    """Tests for REPL output helpers."""

    def test_files_and_todos(self) -> None:
        agent = Agent(config=AgentConfig(), llm=ScriptedChatClient([]), store=InMemoryStore())
        assert format_files(agent) == "Workspace is empty."
        assert format_todos(agent) == "No todos."

        agent.workspace.write("src/app.js", "console.log(1)")
        agent.todos.add("test it")
        assert "src/app.js  14 bytes" in format_files(agent)
        assert "[ ] test it" in format_todos(agent)

    def test_run_request_sets_title(self, capsys: pytest.CaptureFixture[str]) -> None:
        stop = json.dumps({
            "mode": "sequential",
            "actions": [{"tool": "send_message", "args": {"message": "Done!"}}, {"tool": "stop", "args": {}}],
        })
        agent = Agent(config=AgentConfig(), llm=ScriptedChatClient([stop, "Greeting"]), store=InMemoryStore())

        outcome = run_request(agent, "say hi")

        assert outcome is not None
        assert capsys.readouterr().out.strip() == "Done!"
        assert agent.conversation.metadata.name == "Greeting"

    def test_run_request_reports_fatal_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        agent = Agent(config=AgentConfig(), llm=ScriptedChatClient(["bad"] * 5), store=InMemoryStore())
        assert run_request(agent, "hi") is None
        assert "Failed after 5 attempts" in capsys.readouterr().err
