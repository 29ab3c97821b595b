"""
Command-line entry point.

    codeloop [--model M] [--max-iterations N] [--storage-path P] [--no-restore] [message]

With a message, runs one request and prints the final reply. Without one,
starts a REPL. REPL commands: /files, /todos, /reset, /quit.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from codeloop.agent import Agent, RequestOutcome
from codeloop.config import AgentConfig
from codeloop.errors import AgentRequestError, StorageError, TransportError
from codeloop.storage import SQLiteStore
from codeloop.title import generate_title

logger = logging.getLogger(__name__)

PROMPT = "codeloop> "


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codeloop",
        description="Coding agent with an in-memory workspace and a Python sandbox",
    )
    parser.add_argument("--model", help="Model identifier (overrides CODELOOP_LLM_MODEL)")
    parser.add_argument("--max-iterations", type=int, help="Loop iterations per request")
    parser.add_argument("--storage-path", help="SQLite file for conversations and projects")
    parser.add_argument("--no-restore", action="store_true",
                        help="Start a fresh conversation instead of restoring the latest one")
    parser.add_argument("message", nargs="*", help="Run a single request and exit")
    return parser


def build_config(args: argparse.Namespace) -> AgentConfig:
    config = AgentConfig.from_env()
    if args.model:
        config.llm.model = args.model
    if args.max_iterations is not None:
        config.loop.max_iterations = max(1, args.max_iterations)
    if args.storage_path:
        config.storage.path = Path(args.storage_path).expanduser()
    return config


def format_files(agent: Agent) -> str:
    files = agent.workspace.list("")
    if not files:
        return "Workspace is empty."
    lines = []
    for info in files:
        marker = "/" if info.is_directory else ""
        lines.append(f"  {info.path}{marker}  {info.size} bytes")
    stats = agent.workspace.stats()
    lines.append(f"{stats['file_count']} file(s), {stats['total_bytes']} bytes")
    return "\n".join(lines)


def format_todos(agent: Agent) -> str:
    items = agent.todos.items()
    if not items:
        return "No todos."
    return "\n".join(f"  [{'x' if item.completed else ' '}] {item.task}" for item in items)


def run_request(agent: Agent, message: str) -> RequestOutcome | None:
    """Process one request and print its outcome. Returns None on failure."""
    try:
        outcome = agent.process_request(message)
    except AgentRequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None
    except TransportError as e:
        print(f"Model unavailable: {e}", file=sys.stderr)
        return None

    print(outcome.message)
    if outcome.warning:
        print(f"Warning: {outcome.warning}", file=sys.stderr)
    if outcome.should_follow_up_title:
        agent.set_title(generate_title(agent.llm, message))
    return outcome


def repl(agent: Agent) -> None:
    print(f"codeloop - project {agent.project_name}. Type /quit to exit.")
    while True:
        try:
            line = input(PROMPT).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not line:
            continue
        if line in ("/quit", "/exit"):
            break
        if line == "/files":
            print(format_files(agent))
        elif line == "/todos":
            print(format_todos(agent))
        elif line == "/reset":
            agent.reset()
            print(f"Started a new conversation in project {agent.project_name}")
        elif line.startswith("/"):
            print(f"Unknown command: {line}")
        else:
            run_request(agent, line)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=os.getenv("CODELOOP_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    config = build_config(args)

    try:
        store = SQLiteStore(config.storage.path)
    except StorageError as e:
        print(f"Cannot open storage at {config.storage.path}: {e}", file=sys.stderr)
        return 1

    with Agent(config=config, store=store) as agent:
        if not args.no_restore and agent.restore_latest():
            logger.info(f"Restored conversation {agent.conversation.metadata.id}")

        if args.message:
            outcome = run_request(agent, " ".join(args.message))
            return 0 if outcome is not None else 1

        repl(agent)
    return 0


if __name__ == "__main__":
    sys.exit(main())
