from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from epicflow.agents.base import RoleAgent
from epicflow.agents.results import AgentResult


@dataclass(slots=True, frozen=True)
class TaskBreakdown:
    overview: str
    tasks: list[str] = field(default_factory=list)


def _task_text(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.strip()
    if isinstance(entry, dict):
        title = str(entry.get("title") or "").strip()
        description = str(entry.get("description") or "").strip()
        if title and description:
            return f"{title}\n\n{description}"
        return title or description
    return ""


def parse_task_breakdown(payload: dict[str, Any] | None, content: str) -> TaskBreakdown:
    if payload is None:
        raise ValueError("no JSON object in task breakdown reply")
    raw_tasks = payload.get("tasks")
    if not isinstance(raw_tasks, list):
        raise ValueError("'tasks' must be a list")
    tasks = [text for text in (_task_text(entry) for entry in raw_tasks) if text]
    return TaskBreakdown(overview=str(payload.get("overview") or "").strip(), tasks=tasks)


class TaskBreakdownAgent(RoleAgent):
    role = "task-breakdown"
    prompt_file = "breakdown.md"
    fallback_prompt = """
You split an approved epic plan into an ordered list of self-contained tasks
plus a shared overview. Reply with a single JSON object.
""".strip()

    async def breakdown(self, high_level_plan: str) -> AgentResult:
        instruction = (
            "Break the following plan into tasks.\n"
            f"<plan>\n{high_level_plan}\n</plan>"
        )
        return await self._invoke(instruction, {}, parse_task_breakdown)
