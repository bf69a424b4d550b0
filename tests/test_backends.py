import asyncio
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest

from epicflow.agents import CoderAgent, PlannerAgent, ReviewerAgent, TaskBreakdownAgent
from epicflow.backends import RetryPolicy
from epicflow.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendInterruptedError,
    BackendUsageExceededError,
    classify_exit,
)
from epicflow.backends.claude import ClaudeCodeBackend
from epicflow.backends.codex import CodexBackend
from epicflow.backends.resilient import ResilientBackend
from epicflow.cli import _build_backend
from epicflow.config import EpicflowConfig


class AlwaysFailBackend(AgentBackend):
    def __init__(self, error: BackendExecutionError | None = None) -> None:
        self.error = error or BackendExecutionError("boom", backend="fake", retriable=True)
        self.calls = 0

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> AsyncIterator[str]:
        _ = system_prompt, user_prompt, context, tools
        self.calls += 1
        raise self.error
        yield ""  # pragma: no cover


class SuccessBackend(AgentBackend):
    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> AsyncIterator[str]:
        _ = system_prompt, user_prompt, context, tools
        yield "o"
        yield "k"


class FakeStdout:
    def __init__(self, lines: list[bytes]) -> None:
        self._lines = lines
        self._index = 0

    def __aiter__(self) -> "FakeStdout":
        return self

    async def __anext__(self) -> bytes:
        if self._index >= len(self._lines):
            raise StopAsyncIteration
        line = self._lines[self._index]
        self._index += 1
        return line


class FakeStderr:
    def __init__(self, data: bytes = b"") -> None:
        self._data = data

    async def read(self) -> bytes:
        return self._data


class FakeProcess:
    def __init__(self, lines: list[bytes], return_code: int = 0, stderr: bytes = b"") -> None:
        self.stdout = FakeStdout(lines)
        self.stderr = FakeStderr(stderr)
        self.returncode: int | None = None
        self._return_code = return_code

    async def wait(self) -> int:
        self.returncode = self._return_code
        return self._return_code

    def kill(self) -> None:
        self.returncode = -9


def _patch_process(monkeypatch: pytest.MonkeyPatch, process: FakeProcess) -> list[tuple]:
    launched: list[tuple] = []

    async def fake_create_subprocess_exec(*args: Any, **kwargs: Any) -> FakeProcess:
        launched.append(args)
        _ = kwargs
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)
    return launched


def _collect(backend: AgentBackend, context: dict[str, Any] | None = None) -> str:
    async def _run() -> str:
        parts: list[str] = []
        async for part in backend.execute("system", "user", context=context or {}):
            parts.append(part)
        return "".join(parts)

    return asyncio.run(_run())


def test_codex_build_command_shape() -> None:
    backend = CodexBackend(binary="codex", working_directory=Path("."), model="gpt-5-codex")
    command = backend.build_command(
        system_prompt="system",
        user_prompt="implement feature",
        context={"role": "coder"},
    )

    assert command[0:3] == ["codex", "exec", "--json"]
    assert "--full-auto" in command
    assert "--sandbox" not in command
    assert command[command.index("-m") + 1] == "gpt-5-codex"
    assert any(part.startswith("instructions=") for part in command)
    assert "implement feature" in command[-1]
    assert '"role": "coder"' in command[-1]


def test_codex_read_only_roles_use_the_read_only_sandbox() -> None:
    command = CodexBackend().build_command("system", "review", {"role": "reviewer"}, ["Read"])

    assert "--full-auto" not in command
    assert command[command.index("--sandbox") + 1] == "read-only"
    assert "-m" not in command


def test_claude_build_command_shape() -> None:
    backend = ClaudeCodeBackend(
        binary="claude", working_directory=Path("."), model="claude-sonnet-4-5"
    )
    command = backend.build_command(
        "system",
        "implement feature",
        {"role": "reviewer"},
        ["Read"],
    )

    assert command[0:2] == ["claude", "-p"]
    assert command[2].startswith("implement feature")
    assert "Context JSON:" in command[2]
    assert command[command.index("--output-format") + 1] == "stream-json"
    assert command[command.index("--append-system-prompt") + 1] == "system"
    assert command[command.index("--model") + 1] == "claude-sonnet-4-5"
    assert command[command.index("--allowedTools") + 1] == "Read"
    assert "Write" in command[command.index("--disallowedTools") + 1].split(",")
    assert "--permission-mode" not in command


def _launched_command(
    monkeypatch: pytest.MonkeyPatch, backend: AgentBackend, call: Callable[[Any], Any]
) -> list[str]:
    launched = _patch_process(monkeypatch, FakeProcess([b'{"success": true}\n']))
    asyncio.run(call(backend))
    return list(launched[0])


@pytest.mark.parametrize(
    ("call", "writes"),
    [
        (lambda backend: PlannerAgent(backend).plan("Add auth"), False),
        (lambda backend: TaskBreakdownAgent(backend).breakdown("1. Login"), False),
        (lambda backend: ReviewerAgent(backend).review("HEAD~1...HEAD", []), False),
        (lambda backend: CoderAgent(backend).implement("Add login"), True),
    ],
)
def test_only_the_coder_may_edit_files(
    monkeypatch: pytest.MonkeyPatch, call: Callable[[Any], Any], writes: bool
) -> None:
    claude = _launched_command(monkeypatch, ClaudeCodeBackend(), call)
    codex = _launched_command(monkeypatch, CodexBackend(), call)

    assert ("--permission-mode" in claude) is writes
    assert ("--allowedTools" in claude) is not writes
    assert ("--full-auto" in codex) is writes
    assert ("read-only" in codex) is not writes


def test_failover_gives_each_backend_its_own_model(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    launched: list[tuple] = []

    async def fake_create_subprocess_exec(*args: Any, **kwargs: Any) -> FakeProcess:
        _ = kwargs
        launched.append(args)
        if args[0] == "claude":
            return FakeProcess([], return_code=1, stderr=b"overloaded")
        return FakeProcess(
            [b'{"type":"item.completed","item":{"type":"agent_message","text":"{}"}}\n']
        )

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)
    config = EpicflowConfig.default()
    config.backend.retry_backoff_seconds = 0.0
    config.agents.codex_model = "gpt-5-codex"

    output = _collect(_build_backend(config, tmp_path), {"role": "planner"})

    assert output == "{}"
    claude_calls = [args for args in launched if args[0] == "claude"]
    codex_calls = [args for args in launched if args[0] == "codex"]
    assert len(claude_calls) == 2
    assert all(args[args.index("--model") + 1] == "claude-sonnet-4-5" for args in claude_calls)
    assert len(codex_calls) == 1
    assert codex_calls[0][codex_calls[0].index("-m") + 1] == "gpt-5-codex"
    assert "claude-sonnet-4-5" not in codex_calls[0]


def test_classify_exit_distinguishes_signal_usage_and_failure() -> None:
    interrupted = classify_exit("claude", -2, "")
    usage = classify_exit("claude", 1, "Error: usage limit reached for today")
    generic = classify_exit("claude", 1, "something broke")

    assert isinstance(interrupted, BackendInterruptedError)
    assert interrupted.retriable is False
    assert isinstance(usage, BackendUsageExceededError)
    assert usage.retriable is False
    assert type(generic) is BackendExecutionError
    assert generic.retriable is True
    assert generic.exit_code == 1


def test_claude_backend_streams_assistant_text(monkeypatch: pytest.MonkeyPatch) -> None:
    process = FakeProcess(
        [
            b'{"type":"system","subtype":"init"}\n',
            b'{"type":"assistant","message":{"content":[{"type":"text","text":"hello "}]}}\n',
            b'{"type":"assistant","message":{"content":[{"type":"text","text":"world"}]}}\n',
            b'{"type":"result","result":"hello world"}\n',
        ]
    )
    launched = _patch_process(monkeypatch, process)

    output = _collect(ClaudeCodeBackend(), {"role": "planner"})

    assert output == "hello world"
    assert launched[0][0] == "claude"


def test_claude_backend_raises_usage_error_on_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_process(
        monkeypatch, FakeProcess([], return_code=1, stderr=b"Claude AI usage limit reached")
    )

    with pytest.raises(BackendUsageExceededError):
        _collect(ClaudeCodeBackend())


def test_codex_backend_keeps_only_agent_messages(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_process(
        monkeypatch,
        FakeProcess(
            [
                b'{"type":"thread.started"}\n',
                b'{"type":"item.completed","item":{"type":"agent_message","text":"hello"}}\n',
                b"noise-before-json\n",
                b'{"msg":{"type":"agent_message","message":" world"}}\n',
                b'{"type":"turn.completed"}\n',
            ]
        ),
    )

    assert _collect(CodexBackend()) == "hello world"


def test_stderr_is_drained_while_stdout_streams(monkeypatch: pytest.MonkeyPatch) -> None:
    stderr_read = asyncio.Event()

    class SignallingStderr(FakeStderr):
        async def read(self) -> bytes:
            stderr_read.set()
            return b"x" * 200_000

    class WaitingStdout(FakeStdout):
        async def __anext__(self) -> bytes:
            await asyncio.wait_for(stderr_read.wait(), timeout=1.0)
            return await super().__anext__()

    process = FakeProcess([], return_code=1)
    process.stdout = WaitingStdout([b'{"type":"assistant","message":{"content":"hi"}}\n'])
    process.stderr = SignallingStderr()
    _patch_process(monkeypatch, process)

    with pytest.raises(BackendExecutionError, match="exit code 1"):
        _collect(ClaudeCodeBackend())


def test_codex_backend_reports_interruption(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_process(monkeypatch, FakeProcess([], return_code=-15))

    with pytest.raises(BackendInterruptedError):
        _collect(CodexBackend())


def test_resilient_backend_fallback_and_retry_events() -> None:
    events: list[dict[str, Any]] = []
    primary = AlwaysFailBackend()
    backend = ResilientBackend(
        primary_name="primary",
        primary_backend=primary,
        fallback_name="fallback",
        fallback_backend=SuccessBackend(),
        retry_policy=RetryPolicy(max_retries=1, backoff_seconds=0.0, timeout_seconds=5.0),
        event_hook=events.append,
    )

    output = _collect(backend)

    assert output == "ok"
    assert primary.calls == 2
    event_names = [event["event"] for event in events]
    assert "backend_failover_start" in event_names
    assert "backend_retry" in event_names
    assert "backend_fallback_success" in event_names


def test_resilient_backend_does_not_retry_interruptions() -> None:
    primary = AlwaysFailBackend(
        BackendInterruptedError("stopped", backend="fake", retriable=False)
    )
    backend = ResilientBackend(
        primary_name="primary",
        primary_backend=primary,
        fallback_name="fallback",
        fallback_backend=SuccessBackend(),
        retry_policy=RetryPolicy(max_retries=3, backoff_seconds=0.0),
    )

    with pytest.raises(BackendInterruptedError):
        _collect(backend)
    assert primary.calls == 1


def test_resilient_backend_surfaces_usage_limits_after_failover() -> None:
    usage = BackendUsageExceededError("usage limit", backend="fake", retriable=False)
    primary = AlwaysFailBackend(usage)
    fallback = AlwaysFailBackend(usage)
    backend = ResilientBackend(
        primary_name="primary",
        primary_backend=primary,
        fallback_name="fallback",
        fallback_backend=fallback,
        retry_policy=RetryPolicy(max_retries=2, backoff_seconds=0.0),
    )

    with pytest.raises(BackendUsageExceededError):
        _collect(backend)
    assert primary.calls == 1
    assert fallback.calls == 1


def test_resilient_backend_gives_up_after_all_attempts() -> None:
    primary = AlwaysFailBackend()
    backend = ResilientBackend(
        primary_name="claude",
        primary_backend=primary,
        fallback_name="claude",
        fallback_backend=primary,
        retry_policy=RetryPolicy(max_retries=2, backoff_seconds=0.0),
    )

    with pytest.raises(BackendExecutionError, match="All backend attempts failed") as excinfo:
        _collect(backend)
    assert excinfo.value.retriable is False
    assert primary.calls == 3
