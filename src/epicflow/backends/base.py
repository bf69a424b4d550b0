from __future__ import annotations

import asyncio
import contextlib
import json
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

USAGE_LIMIT_PATTERN = re.compile(
    r"usage limit|rate limit|quota exceeded|credit balance is too low|insufficient_quota",
    re.IGNORECASE,
)


class BackendExecutionError(RuntimeError):
    """Raised when a backend process execution fails."""

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        exit_code: int | None = None,
        retriable: bool = True,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.exit_code = exit_code
        self.retriable = retriable


class BackendTimeoutError(BackendExecutionError):
    """Raised when backend execution exceeds configured timeout."""


class BackendProcessError(BackendExecutionError):
    """Raised when backend process lifecycle fails."""


class BackendUsageExceededError(BackendExecutionError):
    """Raised when the provider reports an exhausted usage or rate budget."""


class BackendInterruptedError(BackendExecutionError):
    """Raised when the agent process was stopped by a signal."""


def classify_exit(backend: str, return_code: int, stderr_output: str) -> BackendExecutionError:
    if return_code < 0:
        return BackendInterruptedError(
            f"{backend} backend was interrupted by signal {-return_code}.",
            backend=backend,
            exit_code=return_code,
            retriable=False,
        )
    if USAGE_LIMIT_PATTERN.search(stderr_output):
        return BackendUsageExceededError(
            f"{backend} backend reported a usage limit: {stderr_output}",
            backend=backend,
            exit_code=return_code,
            retriable=False,
        )
    return BackendExecutionError(
        f"{backend} backend failed with exit code {return_code}: {stderr_output}",
        backend=backend,
        exit_code=return_code,
        retriable=True,
    )


class AgentBackend(ABC):
    @abstractmethod
    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> AsyncIterator[str]:
        """Execute an agent and stream textual chunks."""


def render_prompt(user_prompt: str, context: dict[str, Any]) -> str:
    if not context:
        return user_prompt
    return f"{user_prompt}\n\nContext JSON:\n{json.dumps(context, ensure_ascii=False, indent=2)}"


def _appears_partial_json(raw: str) -> bool:
    return raw.count("{") > raw.count("}") or raw.count("[") > raw.count("]")


async def _read_all(stream: asyncio.StreamReader | None) -> bytes:
    if stream is None:
        return b""
    return await stream.read()


class CliAgentBackend(AgentBackend):
    """Runs an agent CLI that prints one JSON event per line and streams its text.

    ``tools=None`` grants the agent write access to the working tree. A tool
    list restricts it to those tools with a read-only sandbox.
    """

    name = "agent"
    # Non-JSON lines are agent text for some CLIs and log noise for others.
    keep_plain_lines = True

    def __init__(
        self,
        binary: str,
        working_directory: Path | None = None,
        model: str | None = None,
    ) -> None:
        self.binary = binary
        self.working_directory = working_directory
        self.model = model.strip() if model and model.strip() else None

    @abstractmethod
    def build_command(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> list[str]:
        """Return the argv for one agent call."""

    @abstractmethod
    def extract_content(self, event: dict[str, Any]) -> str:
        """Return the assistant text carried by one JSON event, if any."""

    async def _iter_text(self, stdout: asyncio.StreamReader) -> AsyncIterator[str]:
        parse_buffer = ""
        async for raw_line in stdout:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            candidate = f"{parse_buffer}{line}" if parse_buffer else line
            try:
                event = json.loads(candidate)
                parse_buffer = ""
            except json.JSONDecodeError:
                if _appears_partial_json(candidate):
                    parse_buffer = candidate
                    continue
                parse_buffer = ""
                if self.keep_plain_lines:
                    yield line
                continue
            if isinstance(event, dict):
                content = self.extract_content(event)
                if content:
                    yield content
        if parse_buffer and self.keep_plain_lines:
            yield parse_buffer

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> AsyncIterator[str]:
        command = self.build_command(system_prompt, user_prompt, context, tools)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.working_directory) if self.working_directory else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise BackendProcessError(
                f"{self.name} binary not found: {self.binary}",
                backend=self.name,
                retriable=False,
            ) from exc
        if process.stdout is None:
            raise BackendProcessError(
                f"{self.name} backend did not expose stdout.", backend=self.name, retriable=False
            )

        # stderr is read concurrently with stdout.
        stderr_task = asyncio.create_task(_read_all(process.stderr))
        try:
            async for content in self._iter_text(process.stdout):
                yield content
            return_code = await process.wait()
            stderr_output = (await stderr_task).decode("utf-8", errors="replace").strip()
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
                if process.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
        if return_code != 0:
            raise classify_exit(self.name, return_code, stderr_output)
