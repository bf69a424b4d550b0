from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from epicflow.agents.breakdown import TaskBreakdownAgent
from epicflow.agents.coder import CoderAgent
from epicflow.agents.planner import PlannerAgent
from epicflow.agents.reviewer import ReviewerAgent
from epicflow.config import EpicflowConfig
from epicflow.errors import EpicError
from epicflow.interaction import Cancelled, Prompter
from epicflow.phases.branching import BranchManager, validate_branch_name
from epicflow.phases.decompose import TaskDecomposer
from epicflow.phases.execution import TaskExecutor
from epicflow.phases.finalize import Finalizer
from epicflow.phases.planning import ApprovedPlan, PlanCancelled, PlanNegotiator, PlanNoOp
from epicflow.phases.preflight import PreflightChecker
from epicflow.phases.summary import RunSummary
from epicflow.session import EpicRun
from epicflow.state.context import ContextStore
from epicflow.state.files import prepare_state_dir
from epicflow.state.todos import TodoStore
from epicflow.vcs import GitRepository

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["completed", "noop", "cancelled"]

TASK_PROMPT = "What epic would you like to work on?"


@dataclass(slots=True, frozen=True)
class EpicOutcome:
    status: OutcomeStatus
    summary: RunSummary | None = None
    reason: str | None = None


@dataclass(slots=True)
class EpicAgents:
    planner: PlannerAgent
    breakdown: TaskBreakdownAgent
    coder: CoderAgent
    reviewer: ReviewerAgent


class EpicOrchestrator:
    """Drives one epic from task description to a reviewed feature branch.

    Every phase persists its result before the next one starts, so a failed or
    interrupted run picks up where it stopped the next time it is invoked.
    """

    def __init__(
        self,
        repo_root: Path,
        git: GitRepository,
        agents: EpicAgents,
        prompter: Prompter,
        config: EpicflowConfig,
    ) -> None:
        self.repo_root = repo_root
        self.git = git
        self.agents = agents
        self.prompter = prompter
        self.config = config
        self.state_dir = repo_root / config.state.directory
        self.store = ContextStore(self.state_dir)
        self.todos = TodoStore(self.state_dir)

        self.preflight = PreflightChecker(git)
        self.negotiator = PlanNegotiator(agents.planner, prompter)
        self.decomposer = TaskDecomposer(agents.breakdown)
        self.branches = BranchManager(git)
        self.executor = TaskExecutor(
            git, self.todos, agents.coder, agents.reviewer, config.workflow
        )
        self.finalizer = Finalizer(self.store, self.todos)

    async def run(self, task: str | None = None) -> EpicOutcome:
        run: EpicRun | None = None
        try:
            await self.preflight.run()

            context = self.store.load()
            if not context.is_empty and task:
                raise EpicError(
                    f"An epic is already in progress: {context.task!r}.",
                    suggestion=(
                        "Run `epicflow run` without a task to resume it, or "
                        "`epicflow reset` to discard it first."
                    ),
                )

            run = EpicRun(context=context, store=self.store)
            if context.is_resumable:
                return await self._resume(run)

            if context.is_empty:
                resolved = await self._resolve_task(task)
                if resolved is None:
                    logger.info("Epic cancelled.")
                    return EpicOutcome(status="cancelled")
                context.task = resolved
                prepare_state_dir(self.state_dir)
                run.checkpoint()
            else:
                logger.info("Resuming epic: %s", context.task)

            return await self._fresh(run)
        except Exception as exc:
            self._report_failure(exc, run)
            raise

    async def _resolve_task(self, task: str | None) -> str | None:
        if task is not None:
            if not task.strip():
                raise EpicError("Task description must not be empty.")
            return task.strip()

        response = await self.prompter.ask(TASK_PROMPT)
        if isinstance(response, Cancelled) or not response.value.strip():
            return None
        return response.value.strip()

    async def _fresh(self, run: EpicRun) -> EpicOutcome:
        context = run.context
        task = context.task or ""
        logger.info("Starting epic: %s", task)

        outcome = await self.negotiator.negotiate(task, run)
        if isinstance(outcome, PlanNoOp):
            self.store.remove()
            return EpicOutcome(status="noop", reason=outcome.reason)
        if isinstance(outcome, PlanCancelled):
            self.store.remove()
            return EpicOutcome(status="cancelled")
        if not isinstance(outcome, ApprovedPlan):
            raise TypeError(f"Unknown planning outcome: {outcome!r}")

        validate_branch_name(outcome.branch_name)
        breakdown = await self.decomposer.decompose(outcome.plan, run)

        context.base_branch = await self.git.current_branch()
        await self.branches.ensure_branch(outcome.branch_name, resume=False)
        run.active_branch = outcome.branch_name

        self.todos.clear()
        for text in breakdown.tasks:
            self.todos.add(text.splitlines()[0].strip(), description=text)

        context.plan = outcome.plan
        context.branch_name = outcome.branch_name
        context.overview = breakdown.overview
        run.checkpoint("plan")

        return await self._implement(run)

    async def _resume(self, run: EpicRun) -> EpicOutcome:
        context = run.context
        branch_name = context.branch_name or ""
        logger.info("Resuming epic: %s", context.task)
        await self.branches.ensure_branch(branch_name, resume=True)
        run.active_branch = branch_name

        items = self.todos.list_items()
        remaining = sum(1 for item in items if item.status == "open")
        logger.info("%d of %d task(s) remaining.", remaining, len(items))
        return await self._implement(run)

    async def _implement(self, run: EpicRun) -> EpicOutcome:
        await self.executor.run(run)
        summary = self.finalizer.finalize(run)
        return EpicOutcome(status="completed", summary=summary)

    def _report_failure(self, exc: Exception, run: EpicRun | None) -> None:
        logger.error("Epic failed: %s", exc)
        suggestion = getattr(exc, "suggestion", None)
        if suggestion:
            logger.error("Suggestion: %s", suggestion)
        if run is None or run.active_branch is None:
            return

        base = run.context.base_branch or "main"
        logger.error(
            "Work so far is on branch '%s'. Re-run `epicflow run` to resume, or clean up with:",
            run.active_branch,
        )
        logger.error("   git checkout %s && git branch -D %s", base, run.active_branch)
