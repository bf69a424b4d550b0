from __future__ import annotations

import logging
from collections.abc import Callable
from importlib import resources
from typing import Any, TypeVar

from epicflow.agents.results import (
    AgentError,
    AgentExit,
    AgentInterrupted,
    AgentResult,
    AgentUsageExceeded,
    extract_json_object,
)
from epicflow.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendInterruptedError,
    BackendUsageExceededError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
PayloadParser = Callable[[dict[str, Any] | None, str], T]

# Inspection only. Roles holding this profile never touch the working tree.
READ_ONLY_TOOLS = (
    "Read",
    "Grep",
    "Glob",
    "Bash(git diff:*)",
    "Bash(git log:*)",
    "Bash(git show:*)",
    "Bash(git status:*)",
)


class RoleAgent:
    role: str = "agent"
    prompt_file: str | None = None
    fallback_prompt: str = "You are a software engineering agent."
    # None lets the agent edit files.
    tools: tuple[str, ...] | None = READ_ONLY_TOOLS

    def __init__(self, backend: AgentBackend) -> None:
        self.backend = backend
        self.system_prompt = self._load_system_prompt()

    def _load_system_prompt(self) -> str:
        if not self.prompt_file:
            return self.fallback_prompt.strip()
        try:
            prompt_path = resources.files("epicflow.prompts").joinpath(self.prompt_file)
            return prompt_path.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, ModuleNotFoundError):
            return self.fallback_prompt.strip()

    async def _complete(self, instruction: str, context: dict[str, Any]) -> str:
        run_context = {"role": self.role, **context}
        chunks: list[str] = []
        async for chunk in self.backend.execute(
            system_prompt=self.system_prompt,
            user_prompt=instruction,
            context=run_context,
            tools=list(self.tools) if self.tools is not None else None,
        ):
            chunks.append(chunk)
        return "".join(chunks).strip()

    async def _invoke(
        self,
        instruction: str,
        context: dict[str, Any],
        parse: PayloadParser[T],
    ) -> AgentResult:
        try:
            content = await self._complete(instruction, context)
        except BackendInterruptedError:
            return AgentInterrupted()
        except BackendUsageExceededError as exc:
            return AgentUsageExceeded(str(exc))
        except BackendExecutionError as exc:
            return AgentError(str(exc))

        logger.debug("%s reply: %s", self.role, content[:2000])
        try:
            return AgentExit(parse(extract_json_object(content), content))
        except (KeyError, TypeError, ValueError) as exc:
            return AgentError(f"{self.role} returned an unusable reply: {exc}")
