from __future__ import annotations

import logging
from dataclasses import dataclass

from epicflow.agents.planner import PlannerAgent, PlanProposal
from epicflow.agents.results import (
    AgentError,
    AgentExit,
    AgentInterrupted,
    AgentUsageExceeded,
)
from epicflow.errors import PlanningError
from epicflow.interaction import Cancelled, Prompter
from epicflow.session import EpicRun

logger = logging.getLogger(__name__)

FEEDBACK_PROMPT = "Press Enter to approve the plan, or provide feedback to refine it"


@dataclass(slots=True, frozen=True)
class ApprovedPlan:
    plan: str
    branch_name: str


@dataclass(slots=True, frozen=True)
class PlanNoOp:
    reason: str


@dataclass(slots=True, frozen=True)
class PlanCancelled:
    pass


PlanningOutcome = ApprovedPlan | PlanNoOp | PlanCancelled


class PlanNegotiator:
    """Drafts a plan with the planner agent until the user approves it."""

    def __init__(self, planner: PlannerAgent, prompter: Prompter) -> None:
        self.planner = planner
        self.prompter = prompter

    async def _draft(
        self,
        run: EpicRun,
        task: str,
        prior_plan: str | None,
        feedback: str | None,
    ) -> PlanProposal | PlanningOutcome:
        run.count_agent_call()
        result = await self.planner.plan(task, prior_plan=prior_plan, feedback=feedback)
        if isinstance(result, AgentExit):
            return result.payload
        if isinstance(result, AgentUsageExceeded):
            return PlanNoOp("Usage limit exceeded.")
        if isinstance(result, AgentInterrupted):
            return PlanCancelled()
        if isinstance(result, AgentError):
            raise PlanningError(f"Planner failed: {result.message}")
        raise TypeError(f"Unknown agent result: {result!r}")

    async def negotiate(self, task: str, run: EpicRun) -> PlanningOutcome:
        logger.info("Creating high-level plan...")
        prior_plan: str | None = None
        feedback: str | None = None

        while True:
            drafted = await self._draft(run, task, prior_plan, feedback)
            if isinstance(drafted, PlanNoOp):
                logger.info("No plan created. Reason: %s", drafted.reason)
                return drafted
            if isinstance(drafted, PlanCancelled):
                logger.info("Plan creation cancelled.")
                return drafted

            proposal = drafted
            if proposal.question is not None:
                question = proposal.question
                response = await self.prompter.ask(
                    question.question, default=question.default_answer
                )
                if isinstance(response, Cancelled):
                    logger.info("Plan creation cancelled by user.")
                    return PlanCancelled()
                feedback = (
                    f'The user answered the question "{question.question}" '
                    f'with: "{response.value}"'
                )
                continue

            if not proposal.plan:
                reason = proposal.reason or "The planner did not produce a plan."
                logger.info("No plan created. Reason: %s", reason)
                return PlanNoOp(reason)

            logger.info("Plan:\n%s", proposal.plan)
            if proposal.branch_name:
                logger.info("Suggested branch name: %s", proposal.branch_name)

            response = await self.prompter.ask(FEEDBACK_PROMPT)
            if isinstance(response, Cancelled):
                logger.info("Plan creation cancelled by user.")
                return PlanCancelled()
            if response.value.strip():
                prior_plan = proposal.plan
                feedback = response.value.strip()
                continue

            if not proposal.branch_name:
                raise PlanningError("The approved plan did not include a branch name.")
            logger.info("High-level plan approved.")
            return ApprovedPlan(plan=proposal.plan, branch_name=proposal.branch_name)
