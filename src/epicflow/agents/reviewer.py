from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from epicflow.agents.base import RoleAgent
from epicflow.agents.results import AgentResult
from epicflow.vcs import ChangedFile


@dataclass(slots=True, frozen=True)
class ReviewFinding:
    file: str
    lines: str
    review: str


@dataclass(slots=True, frozen=True)
class ReviewReport:
    overview: str
    findings: list[ReviewFinding] = field(default_factory=list)


def parse_review_report(payload: dict[str, Any] | None, content: str) -> ReviewReport:
    if payload is None:
        raise ValueError("no JSON object in review reply")
    raw_reviews = payload.get("specificReviews") or []
    if not isinstance(raw_reviews, list):
        raise ValueError("'specificReviews' must be a list")
    findings = [
        ReviewFinding(
            file=str(item.get("file", "")).strip(),
            lines=str(item.get("lines", "")).strip(),
            review=str(item.get("review", "")).strip(),
        )
        for item in raw_reviews
        if isinstance(item, dict) and str(item.get("review", "")).strip()
    ]
    return ReviewReport(overview=str(payload.get("overview") or "").strip(), findings=findings)


def format_review_request(commit_range: str, changed_files: list[ChangedFile]) -> str:
    parts: list[str] = []
    if changed_files:
        file_list = "\n".join(f"{item.status}: {item.path}" for item in changed_files)
        parts.append(f"<file_status>\n{file_list}\n</file_status>")
    parts.append(
        "<review_instructions>\n"
        f"Review the changes in commit range '{commit_range}'. Inspect the diff of each "
        "reviewable file in that range. File status information is already provided above.\n"
        "</review_instructions>"
    )
    return "\n".join(parts)


class ReviewerAgent(RoleAgent):
    role = "reviewer"
    prompt_file = "reviewer.md"
    fallback_prompt = """
You are the code reviewer. Review only the changed lines in the given commit range
and report concrete, actionable issues. Reply with a single JSON object.
""".strip()

    async def review(self, commit_range: str, changed_files: list[ChangedFile]) -> AgentResult:
        return await self._invoke(
            format_review_request(commit_range, changed_files),
            {"commitRange": commit_range},
            parse_review_report,
        )
