from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from epicflow.agents.base import RoleAgent
from epicflow.agents.results import AgentResult


@dataclass(slots=True, frozen=True)
class PlanQuestion:
    question: str
    default_answer: str | None = None


@dataclass(slots=True, frozen=True)
class PlanProposal:
    plan: str | None = None
    branch_name: str | None = None
    question: PlanQuestion | None = None
    reason: str | None = None


def _optional_text(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_plan_proposal(payload: dict[str, Any] | None, content: str) -> PlanProposal:
    if payload is None:
        raise ValueError("no JSON object in planner reply")

    question: PlanQuestion | None = None
    raw_question = payload.get("question")
    if isinstance(raw_question, dict):
        text = _optional_text(raw_question, "question")
        if text:
            question = PlanQuestion(text, _optional_text(raw_question, "defaultAnswer"))
    elif isinstance(raw_question, str) and raw_question.strip():
        question = PlanQuestion(raw_question.strip())

    return PlanProposal(
        plan=_optional_text(payload, "plan"),
        branch_name=_optional_text(payload, "branchName"),
        question=question,
        reason=_optional_text(payload, "reason"),
    )


def render_plan_request(task: str, prior_plan: str | None, feedback: str | None) -> str:
    parts = ["# Task Input", "", "The user has provided a task:", "<task>", task, "</task>"]
    if prior_plan:
        parts.extend(["", "The previous version of the plan:", "<plan>", prior_plan, "</plan>"])
    if feedback:
        parts.extend(
            [
                "",
                "The user has provided the following feedback on the plan, please adjust it:",
                feedback,
            ]
        )
    return "\n".join(parts)


class PlannerAgent(RoleAgent):
    role = "planner"
    prompt_file = "planner.md"
    fallback_prompt = """
You are the epic planner. Produce a high-level implementation plan and a git branch name,
ask one clarifying question, or explain why nothing needs to be done.
Reply with a single JSON object.
""".strip()

    async def plan(
        self,
        task: str,
        prior_plan: str | None = None,
        feedback: str | None = None,
    ) -> AgentResult:
        return await self._invoke(
            render_plan_request(task, prior_plan, feedback),
            {},
            parse_plan_proposal,
        )
