from __future__ import annotations

from pathlib import Path
from typing import Any

from epicflow.backends.base import CliAgentBackend, render_prompt

WRITE_TOOLS = ("Edit", "MultiEdit", "Write", "NotebookEdit")


class ClaudeCodeBackend(CliAgentBackend):
    name = "claude"

    def __init__(
        self,
        binary: str = "claude",
        working_directory: Path | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(binary, working_directory, model)

    def build_command(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
        tools: list[str] | None = None,
    ) -> list[str]:
        command = [
            self.binary,
            "-p",
            render_prompt(user_prompt, context),
            "--output-format",
            "stream-json",
            "--verbose",
        ]
        if system_prompt:
            command.extend(["--append-system-prompt", system_prompt])
        if self.model:
            command.extend(["--model", self.model])
        if tools is None:
            command.extend(["--permission-mode", "acceptEdits"])
        else:
            command.extend(["--allowedTools", ",".join(tools)])
            command.extend(["--disallowedTools", ",".join(WRITE_TOOLS)])
        return command

    def extract_content(self, event: dict[str, Any]) -> str:
        if event.get("type") == "result":
            # The final result event repeats the assistant text.
            return ""
        message = event.get("message")
        if isinstance(message, dict):
            event = message
        content = event.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                item["text"]
                for item in content
                if isinstance(item, dict)
                and item.get("type", "text") == "text"
                and isinstance(item.get("text"), str)
            )
        delta = event.get("delta")
        return delta if isinstance(delta, str) else ""
