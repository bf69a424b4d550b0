from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from epicflow.agents.base import RoleAgent
from epicflow.agents.results import AgentResult

CodeMode = Literal["interactive", "noninteractive"]


@dataclass(slots=True, frozen=True)
class CodeOutcome:
    success: bool
    summaries: list[str] = field(default_factory=list)


def parse_code_outcome(payload: dict[str, Any] | None, content: str) -> CodeOutcome:
    # A coder that exited cleanly without a JSON trailer still did its work.
    if payload is None:
        return CodeOutcome(success=True, summaries=[content[:2000]] if content else [])

    bail_reason = str(payload.get("bailReason") or "").strip()
    summaries: list[str] = []
    raw_summaries = payload.get("summaries")
    if isinstance(raw_summaries, list):
        summaries.extend(str(item).strip() for item in raw_summaries if str(item).strip())
    summary = str(payload.get("summary") or "").strip()
    if summary:
        summaries.append(summary)
    if bail_reason:
        summaries.append(bail_reason)

    success = payload.get("success")
    if success is None:
        success = not bail_reason
    return CodeOutcome(success=bool(success), summaries=summaries)


class CoderAgent(RoleAgent):
    role = "coder"
    prompt_file = "coder.md"
    tools = None
    fallback_prompt = """
You are the coder. Implement exactly the requested task in the current repository,
matching its conventions. Do not commit. Finish with a JSON summary.
""".strip()

    async def implement(self, task: str, mode: CodeMode = "noninteractive") -> AgentResult:
        return await self._invoke(task, {"mode": mode}, parse_code_outcome)
