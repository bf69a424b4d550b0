from __future__ import annotations

import logging
import time

from epicflow.agents.coder import CodeOutcome, CoderAgent
from epicflow.agents.results import AgentExit, describe_result
from epicflow.agents.reviewer import ReviewerAgent, ReviewFinding, ReviewReport
from epicflow.config import WorkflowConfig
from epicflow.errors import ImplementationError
from epicflow.phases.summary import format_elapsed
from epicflow.session import EpicRun
from epicflow.state.todos import TodoItem, TodoStore
from epicflow.vcs import GitRepository

logger = logging.getLogger(__name__)

COMMIT_RANGE = "HEAD~1...HEAD"
MINIFIED_SUFFIXES = (".min.js", ".min.css", ".map")
RULE = "-" * 80


def is_reviewable_path(path: str, workflow: WorkflowConfig) -> bool:
    parts = path.replace("\\", "/").split("/")
    name = parts[-1]
    if name in workflow.excluded_filenames:
        return False
    if any(part in workflow.excluded_directories for part in parts[:-1]):
        return False
    lowered = name.lower()
    if lowered.endswith(MINIFIED_SUFFIXES):
        return False
    if name in workflow.reviewable_filenames:
        return True
    return any(lowered.endswith(ext.lower()) for ext in workflow.reviewable_extensions)


def format_findings(findings: list[ReviewFinding]) -> str:
    return "\n\n".join(
        f"File: {finding.file} (lines: {finding.lines})\nReview: {finding.review}"
        for finding in findings
    )


def render_task_prompt(item: TodoItem, overview: str | None) -> str:
    task_text = item.description or item.title
    return (
        "You are working on an epic. Here is the shared overview:\n\n"
        f"<overview>\n{overview or ''}\n</overview>\n\n"
        "Your current task is to implement this specific item:\n"
        f"{task_text}\n\n"
        "Focus only on this item, but use the overview for context."
    )


def render_fix_prompt(item: TodoItem, overview: str | None, findings: list[ReviewFinding]) -> str:
    task_text = item.description or item.title
    return (
        f'You are working on an epic. The original task was: "{task_text}".\n\n'
        "Here is the shared overview for context:\n"
        f"<overview>\n{overview or ''}\n</overview>\n\n"
        "After an initial implementation, a review found the following issues. "
        "Please fix them:\n\n"
        f"{format_findings(findings)}"
    )


class TaskExecutor:
    """Implements open todo items one at a time, each as a single reviewed commit."""

    def __init__(
        self,
        git: GitRepository,
        todos: TodoStore,
        coder: CoderAgent,
        reviewer: ReviewerAgent,
        workflow: WorkflowConfig,
    ) -> None:
        self.git = git
        self.todos = todos
        self.coder = coder
        self.reviewer = reviewer
        self.workflow = workflow

    @property
    def max_retries(self) -> int:
        return max(1, int(self.workflow.max_review_retries))

    async def run(self, run: EpicRun) -> None:
        logger.info("Starting implementation loop...")
        iteration = 0
        while True:
            open_items = self.todos.list_items("open")
            if not open_items:
                break
            iteration += 1
            await self.execute_task(open_items[0], run, iteration)

            all_items = self.todos.list_items()
            completed = sum(1 for item in all_items if item.status == "completed")
            logger.info("Progress: %d/%d tasks completed", completed, len(all_items))
        logger.info("All tasks complete.")

    async def _run_coder(self, prompt: str, run: EpicRun, action: str) -> CodeOutcome:
        run.count_agent_call()
        result = await self.coder.implement(prompt, mode="noninteractive")
        if not isinstance(result, AgentExit):
            raise ImplementationError(f"{action} failed ({describe_result(result)}).")
        outcome: CodeOutcome = result.payload
        if not outcome.success:
            reason = "; ".join(outcome.summaries) or "no reason given"
            raise ImplementationError(f"{action} failed: {reason}")
        for summary in outcome.summaries:
            logger.debug("coder: %s", summary)
        return outcome

    async def execute_task(self, item: TodoItem, run: EpicRun, iteration: int) -> bool:
        started = time.monotonic()
        logger.info("\n%s\nTask %d: %s\n%s", RULE, iteration, item.title, RULE)

        await self._run_coder(
            render_task_prompt(item, run.context.overview),
            run,
            f"Implementing task '{item.title}'",
        )

        message = f"feat: {item.title}"
        await self.git.stage_all()
        has_changes = bool((await self.git.status_porcelain()).strip())
        if not has_changes:
            logger.warning(
                "Task '%s' produced no file changes; recording an empty commit.", item.title
            )
        await self.git.commit(message, allow_empty=not has_changes)
        run.commit_messages.append(message)

        passed = await self.review_and_fix(item, run)

        elapsed = format_elapsed(time.monotonic() - started)
        if passed:
            logger.info("Task %d completed successfully (%s)", iteration, elapsed)
        else:
            run.flagged_tasks.append(item.title)
            logger.warning("Task %d completed with potential issues (%s)", iteration, elapsed)

        self.todos.update_status(item.id, "completed")
        run.checkpoint(f"task-{item.id}")
        return passed

    async def review_and_fix(self, item: TodoItem, run: EpicRun) -> bool:
        """Review the task commit and amend fixes into it until clean or out of retries.

        Returns True only when the final review found nothing (or nothing was
        reviewable).
        """
        max_retries = self.max_retries
        for attempt in range(max_retries):
            changed_files = await self.git.changed_files("HEAD~1", "HEAD")
            if not changed_files:
                logger.info("No files were changed. Skipping review.")
                return True
            if not any(is_reviewable_path(f.path, self.workflow) for f in changed_files):
                logger.info("No reviewable files were changed. Skipping review.")
                return True

            logger.info(
                "Review iteration %d/%d (%d changed file(s))",
                attempt + 1,
                max_retries,
                len(changed_files),
            )
            run.count_agent_call()
            result = await self.reviewer.review(COMMIT_RANGE, changed_files)
            if not isinstance(result, AgentExit):
                logger.error("Review agent stopped with status: %s.", describe_result(result))
                return False

            report: ReviewReport = result.payload
            if not report.findings:
                logger.info("Review passed. No issues found.")
                return True

            logger.warning("Review found %d issue(s).", len(report.findings))
            for index, finding in enumerate(report.findings, start=1):
                logger.warning("   %d. %s:%s", index, finding.file, finding.lines)

            if attempt == max_retries - 1:
                logger.warning(
                    "Max review retries (%d) reached. Moving to the next task; "
                    "issues might remain.",
                    max_retries,
                )
                return False

            await self._run_coder(
                render_fix_prompt(item, run.context.overview, report.findings),
                run,
                f"Fixing review findings for '{item.title}'",
            )
            await self.git.stage_all()
            await self.git.amend_no_edit()

        return False
