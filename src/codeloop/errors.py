"""
Error taxonomy for the agent.

Workspace and sandbox errors are raised where the failure is detected and
converted into failed ToolResults at the registry boundary. Schema errors
are recovered by the decision retry protocol. Transport errors propagate
to the caller untouched.
"""


class CodeloopError(Exception):
    """Base class for all agent errors."""
    pass


class SchemaValidationError(CodeloopError):
    """The model's output is not a valid Decision Document."""

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(self.issues) or "invalid decision document")


class DecisionRetryExhausted(SchemaValidationError):
    """Every attempt of a retry chain produced an invalid Decision Document."""

    def __init__(self, issues: list[str], attempts: int) -> None:
        self.attempts = attempts
        super().__init__(issues)

    def __str__(self) -> str:
        return f"Failed after {self.attempts} attempts: {'; '.join(self.issues)}"


class UnknownToolError(CodeloopError):
    """Dispatch referenced a tool name that is not registered."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class ToolExecutionError(CodeloopError):
    """A tool raised while executing."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")


class WorkspaceError(CodeloopError):
    """A workspace operation was rejected."""
    pass


class QuotaExceededError(WorkspaceError):
    """A workspace write would exceed the per-file or total quota."""
    pass


class PathTraversalRejected(WorkspaceError):
    """A workspace path resolves outside the workspace root."""
    pass


class WorkspaceFileNotFound(WorkspaceError):
    """A workspace path does not name an existing file."""
    pass


class ExecutionRejected(CodeloopError):
    """The sandbox pre-scan refused to run the source."""
    pass


class ExecutionTimeoutError(CodeloopError):
    """Sandboxed code ran past its wall-clock limit."""

    def __init__(self, timeout: float, elapsed_ms: int) -> None:
        self.timeout = timeout
        self.elapsed_ms = elapsed_ms
        super().__init__(f"Execution timed out after {timeout:g}s")


class ExecutionRuntimeError(CodeloopError):
    """Sandboxed code raised or exited non-zero."""

    def __init__(self, message: str, elapsed_ms: int, output: str = "") -> None:
        self.elapsed_ms = elapsed_ms
        self.output = output
        super().__init__(message)


class TransportError(CodeloopError):
    """The model API could not be reached or refused the request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(TransportError):
    """The model API rejected the credentials."""
    pass


class RateLimitError(TransportError):
    """The model API is rate limiting this client."""
    pass


class AgentRequestError(CodeloopError):
    """A single process_request call failed fatally. Committed turns are kept."""
    pass


class StorageError(CodeloopError):
    """The persistence collaborator failed to load or save a record."""
    pass
