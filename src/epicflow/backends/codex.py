from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from epicflow.backends.base import CliAgentBackend, render_prompt

MESSAGE_TYPES = {"agent_message", "assistant_message"}


class CodexBackend(CliAgentBackend):
    """`codex exec --json`. Codex has no per-tool allow list, so a tool list
    only selects the read-only sandbox."""

    name = "codex"
    keep_plain_lines = False

    def __init__(
        self,
        binary: str = "codex",
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
            "exec",
            "--json",
            "-c",
            f"instructions={json.dumps(system_prompt, ensure_ascii=False)}",
        ]
        if tools is None:
            command.append("--full-auto")
        else:
            command.extend(["--sandbox", "read-only"])
        if self.model:
            command.extend(["-m", self.model])
        command.append(render_prompt(user_prompt, context))
        return command

    def extract_content(self, event: dict[str, Any]) -> str:
        # Current releases wrap messages in "item"; older ones used "msg".
        item = event.get("item") or event.get("msg")
        if not isinstance(item, dict) or item.get("type") not in MESSAGE_TYPES:
            return ""
        text = item.get("text", item.get("message"))
        return text if isinstance(text, str) else ""
