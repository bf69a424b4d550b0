from __future__ import annotations

from dataclasses import dataclass, field


def format_elapsed(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass(slots=True)
class RunSummary:
    task: str
    branch_name: str
    base_branch: str | None
    tasks_completed: int
    total_tasks: int
    elapsed_seconds: float
    commit_messages: list[str] = field(default_factory=list)
    flagged_tasks: list[str] = field(default_factory=list)

    @property
    def elapsed(self) -> str:
        return format_elapsed(self.elapsed_seconds)

    def lines(self) -> list[str]:
        rule = "=" * 80
        out = [
            rule,
            "Epic completed.",
            rule,
            f"Task: {self.task}",
            f"Tasks completed: {self.tasks_completed}/{self.total_tasks}",
            f"Commits created: {len(self.commit_messages)}",
            f"Branch: {self.branch_name}",
            f"Elapsed: {self.elapsed}",
        ]
        if self.commit_messages:
            out.append("")
            out.append("Commits:")
            out.extend(
                f"   {index}. {message}"
                for index, message in enumerate(self.commit_messages, start=1)
            )
        if self.flagged_tasks:
            out.append("")
            out.append("Tasks that may still need attention:")
            out.extend(f"   - {title}" for title in self.flagged_tasks)
        out.append("")
        out.append("Next steps:")
        out.append(f"   1. Push the branch: git push -u origin {self.branch_name}")
        target = self.base_branch or "your base branch"
        out.append(f"   2. Open a pull request against {target}")
        return out
