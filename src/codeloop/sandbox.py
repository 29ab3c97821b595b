"""
Execution Sandbox - runs short, untrusted Python snippets.

Isolation is best effort, not a hardened security boundary:
- a static pre-scan rejects source that reaches for imports, dynamic
  evaluation, the filesystem or interpreter internals
- the snippet runs in a separate interpreter (isolated mode, no site
  packages, empty environment, throwaway working directory)
- inside that interpreter the snippet sees a reduced set of builtins with
  no __import__, open, eval, exec or compile, plus a handful of
  preloaded pure modules (math, json, random, ...)
- a wall-clock timeout kills the child, and on POSIX the child also caps
  its own memory and CPU time

stdout and stderr are captured, never inherited. If the last statement is
an expression its value is echoed, REPL style.
"""

from __future__ import annotations

import logging
import re
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import Any

from codeloop.config import SandboxConfig
from codeloop.errors import ExecutionRejected, ExecutionRuntimeError, ExecutionTimeoutError

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 10000

FORBIDDEN_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("import statement", re.compile(r"^\s*(import|from)\s+\w", re.MULTILINE)),
    ("__import__", re.compile(r"__import__")),
    ("eval()", re.compile(r"\beval\s*\(")),
    ("exec()", re.compile(r"\bexec\s*\(")),
    ("compile()", re.compile(r"\bcompile\s*\(")),
    ("open()", re.compile(r"\bopen\s*\(")),
    ("getattr()", re.compile(r"\b(getattr|setattr|delattr)\s*\(")),
    ("globals()/locals()/vars()", re.compile(r"\b(globals|locals|vars)\s*\(")),
    ("os module", re.compile(r"\bos\.")),
    ("sys module", re.compile(r"\bsys\.")),
    ("subprocess", re.compile(r"\bsubprocess\b")),
    ("__builtins__", re.compile(r"__builtins__")),
    ("__subclasses__", re.compile(r"__subclasses__")),
    ("__globals__", re.compile(r"__globals__")),
    ("private attribute access", re.compile(r"\.\s*_\w")),
]

_BOOTSTRAP = r'''
import ast
import sys
import traceback

import collections, datetime, functools, itertools, json, math, random, re, statistics, string

if sys.platform != "win32":
    import resource
    _memory = int(sys.argv[1]) * 1024 * 1024
    _cpu = int(sys.argv[2])
    for _limit, _value in ((resource.RLIMIT_AS, _memory), (resource.RLIMIT_CPU, _cpu)):
        try:
            resource.setrlimit(_limit, (_value, _value))
        except (ValueError, OSError):
            pass

_SAFE_NAMES = (
    "abs all any ascii bin bool bytearray bytes callable chr classmethod complex dict "
    "divmod enumerate filter float format frozenset hash hex int isinstance issubclass "
    "iter len list map max min next object oct ord pow print property range repr "
    "reversed round set slice sorted staticmethod str sum super tuple zip "
    "__build_class__ ArithmeticError AssertionError AttributeError Exception "
    "IndexError KeyError LookupError NameError NotImplementedError OverflowError "
    "RuntimeError StopIteration TypeError ValueError ZeroDivisionError"
).split()
_builtins = __builtins__ if isinstance(__builtins__, dict) else __builtins__.__dict__
_safe = {name: _builtins[name] for name in _SAFE_NAMES if name in _builtins}

_namespace = {
    "__builtins__": _safe,
    "__name__": "__sandbox__",
    "collections": collections,
    "datetime": datetime,
    "functools": functools,
    "itertools": itertools,
    "json": json,
    "math": math,
    "random": random,
    "re": re,
    "statistics": statistics,
    "string": string,
}

try:
    _tree = ast.parse(sys.stdin.read(), "<sandbox>", "exec")
    _echo = None
    if _tree.body and isinstance(_tree.body[-1], ast.Expr):
        _echo = ast.Expression(_tree.body.pop().value)
    exec(compile(_tree, "<sandbox>", "exec"), _namespace)
    if _echo is not None:
        _value = eval(compile(_echo, "<sandbox>", "eval"), _namespace)
        if _value is not None:
            print("→ " + repr(_value))
except BaseException as _exc:
    _frames = [f for f in traceback.extract_tb(_exc.__traceback__) if f.filename == "<sandbox>"]
    _where = f" (line {_frames[-1].lineno})" if _frames else ""
    _message = _exc
    if isinstance(_exc, SyntaxError):
        _message = _exc.msg
        _where = f" (line {_exc.lineno})" if _exc.lineno else ""
    print(f"{type(_exc).__name__}: {_message}{_where}", file=sys.stderr)
    sys.stdout.flush()
    sys.exit(1)
'''


@dataclass
class ExecutionResult:
    """Outcome of a successful sandboxed run."""
    output: str
    stdout: str
    stderr: str
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "elapsed_ms": self.elapsed_ms,
        }


def scan_source(source: str) -> list[str]:
    """Return the names of every forbidden pattern found in source."""
    return [name for name, pattern in FORBIDDEN_PATTERNS if pattern.search(source)]


def _truncate(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + f"\n... [truncated {len(text) - MAX_OUTPUT_CHARS} chars]"


class Sandbox:
    """Runs Python source in a restricted child interpreter."""

    def __init__(self, config: SandboxConfig | None = None) -> None:
        self.config = config or SandboxConfig()

    def run(self, source: str) -> ExecutionResult:
        """
        Execute source and return its captured output.

        Raises:
            ExecutionRejected: if the pre-scan finds a forbidden pattern
            ExecutionTimeoutError: if the wall-clock limit is hit
            ExecutionRuntimeError: if the snippet raises or exits non-zero
        """
        violations = scan_source(source)
        if violations:
            logger.warning(f"Sandbox rejected source: {', '.join(violations)}")
            raise ExecutionRejected(
                f"Code contains forbidden constructs: {', '.join(violations)}"
            )

        timeout = self.config.timeout
        cpu_seconds = max(1, int(timeout) + 1)
        command = [
            sys.executable, "-I", "-S", "-c", _BOOTSTRAP,
            str(self.config.memory_mb), str(cpu_seconds),
        ]

        start = time.monotonic()
        with tempfile.TemporaryDirectory(prefix="codeloop-sandbox-") as workdir:
            try:
                completed = subprocess.run(
                    command,
                    input=source,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=timeout,
                    cwd=workdir,
                    env={},
                )
            except subprocess.TimeoutExpired:
                elapsed_ms = int((time.monotonic() - start) * 1000)
                logger.warning(f"Sandbox timed out after {elapsed_ms}ms")
                raise ExecutionTimeoutError(timeout, elapsed_ms) from None

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = _truncate(completed.stdout)
        stderr = _truncate(completed.stderr)

        if completed.returncode != 0:
            message = stderr.strip().splitlines()[-1] if stderr.strip() else (
                f"Process exited with code {completed.returncode}"
            )
            logger.info(f"Sandbox run failed in {elapsed_ms}ms: {message}")
            raise ExecutionRuntimeError(message, elapsed_ms, output=stdout)

        logger.info(f"Sandbox run succeeded in {elapsed_ms}ms")
        output = stdout if not stderr else f"{stdout}{stderr}"
        return ExecutionResult(output=output, stdout=stdout, stderr=stderr, elapsed_ms=elapsed_ms)
