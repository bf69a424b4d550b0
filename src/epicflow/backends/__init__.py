from epicflow.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendInterruptedError,
    BackendProcessError,
    BackendTimeoutError,
    BackendUsageExceededError,
    CliAgentBackend,
)
from epicflow.backends.claude import ClaudeCodeBackend
from epicflow.backends.codex import CodexBackend
from epicflow.backends.resilient import ResilientBackend, RetryPolicy

__all__ = [
    "AgentBackend",
    "BackendExecutionError",
    "BackendInterruptedError",
    "BackendProcessError",
    "BackendTimeoutError",
    "BackendUsageExceededError",
    "ClaudeCodeBackend",
    "CliAgentBackend",
    "CodexBackend",
    "ResilientBackend",
    "RetryPolicy",
]
