"""
Configuration for the agent system.

All configuration is loaded from environment variables. This keeps the
agent usable against any OpenAI-compatible endpoint (OpenRouter, vLLM,
Ollama) without hardcoding a provider.

The iteration ceiling, retry bound and workspace quotas are hard limits:
they are enforced, not advisory.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"


@dataclass
class LLMConfig:
    """Configuration for the LLM client."""
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: float = 180.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("CODELOOP_LLM_BASE_URL", DEFAULT_BASE_URL),
            api_key=os.getenv("CODELOOP_LLM_API_KEY", os.getenv("OPENROUTER_API_KEY", "")),
            model=os.getenv("CODELOOP_LLM_MODEL", DEFAULT_MODEL),
            temperature=float(os.getenv("CODELOOP_LLM_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("CODELOOP_LLM_MAX_TOKENS", "4096")),
            timeout=float(os.getenv("CODELOOP_LLM_TIMEOUT", "180")),
        )


@dataclass
class ContextConfig:
    """
    Configuration for the outgoing context.

    history_window bounds how many non-system turns the conversation keeps.
    token_budget is a second, coarser guard applied when the context is
    built; tokens are approximated as chars / chars_per_token.
    """
    history_window: int = 10
    token_budget: int = 128000
    chars_per_token: float = 4.0
    reserved_for_response: int = 4096

    @classmethod
    def from_env(cls) -> "ContextConfig":
        """Load configuration from environment variables."""
        return cls(
            history_window=int(os.getenv("CODELOOP_HISTORY_WINDOW", "10")),
            token_budget=int(os.getenv("CODELOOP_CONTEXT_TOKEN_BUDGET", "128000")),
            chars_per_token=float(os.getenv("CODELOOP_CONTEXT_CHARS_PER_TOKEN", "4.0")),
            reserved_for_response=int(os.getenv("CODELOOP_CONTEXT_RESERVED_FOR_RESPONSE", "4096")),
        )

    @property
    def available_budget(self) -> int:
        """Tokens available for context (excluding response reservation)."""
        return self.token_budget - self.reserved_for_response


@dataclass
class LoopConfig:
    """
    Configuration for the orchestration loop.

    max_iterations caps model calls per request (not counting retries).
    max_parse_attempts caps model outputs per retry chain, the first
    one included.
    """
    max_iterations: int = 10
    max_parse_attempts: int = 5
    parallel_workers: int = 8

    @classmethod
    def from_env(cls) -> "LoopConfig":
        """Load configuration from environment variables."""
        return cls(
            max_iterations=int(os.getenv("CODELOOP_MAX_ITERATIONS", "10")),
            max_parse_attempts=int(os.getenv("CODELOOP_MAX_PARSE_ATTEMPTS", "5")),
            parallel_workers=int(os.getenv("CODELOOP_PARALLEL_WORKERS", "8")),
        )


@dataclass
class WorkspaceConfig:
    """Quotas for the in-memory workspace, in bytes."""
    max_file_bytes: int = 8 * 1024 * 1024
    max_total_bytes: int = 40 * 1024 * 1024

    @classmethod
    def from_env(cls) -> "WorkspaceConfig":
        """Load configuration from environment variables."""
        return cls(
            max_file_bytes=int(os.getenv("CODELOOP_MAX_FILE_BYTES", str(8 * 1024 * 1024))),
            max_total_bytes=int(os.getenv("CODELOOP_MAX_TOTAL_BYTES", str(40 * 1024 * 1024))),
        )


@dataclass
class SandboxConfig:
    """Limits for sandboxed code execution."""
    timeout: float = 5.0
    memory_mb: int = 512

    @classmethod
    def from_env(cls) -> "SandboxConfig":
        """Load configuration from environment variables."""
        return cls(
            timeout=float(os.getenv("CODELOOP_SANDBOX_TIMEOUT", "5.0")),
            memory_mb=int(os.getenv("CODELOOP_SANDBOX_MEMORY_MB", "512")),
        )


@dataclass
class StorageConfig:
    """Where conversations and project snapshots are persisted."""
    path: Path = field(default_factory=lambda: Path.home() / ".codeloop" / "codeloop.db")
    autosave: bool = True

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Load configuration from environment variables."""
        default = Path.home() / ".codeloop" / "codeloop.db"
        return cls(
            path=Path(os.getenv("CODELOOP_STORAGE_PATH", str(default))).expanduser(),
            autosave=os.getenv("CODELOOP_AUTOSAVE", "true").lower() in ("1", "true", "yes"),
        )


@dataclass
class AgentConfig:
    """Combined configuration for the entire agent system."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load all configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            context=ContextConfig.from_env(),
            loop=LoopConfig.from_env(),
            workspace=WorkspaceConfig.from_env(),
            sandbox=SandboxConfig.from_env(),
            storage=StorageConfig.from_env(),
        )
