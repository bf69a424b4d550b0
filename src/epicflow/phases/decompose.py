from __future__ import annotations

import logging

from epicflow.agents.breakdown import TaskBreakdown, TaskBreakdownAgent
from epicflow.agents.results import AgentExit, describe_result
from epicflow.errors import DecompositionError
from epicflow.session import EpicRun

logger = logging.getLogger(__name__)


class TaskDecomposer:
    def __init__(self, agent: TaskBreakdownAgent) -> None:
        self.agent = agent

    async def decompose(self, high_level_plan: str, run: EpicRun) -> TaskBreakdown:
        logger.info("Breaking the plan into tasks...")
        run.count_agent_call()
        result = await self.agent.breakdown(high_level_plan)
        if not isinstance(result, AgentExit):
            raise DecompositionError(f"Task breakdown failed ({describe_result(result)}).")

        breakdown: TaskBreakdown = result.payload
        if not breakdown.tasks:
            raise DecompositionError(
                "Task breakdown returned no tasks; nothing was implemented.",
                suggestion="Refine the epic description and run again.",
            )
        logger.info("Created %d task(s).", len(breakdown.tasks))
        for index, task in enumerate(breakdown.tasks, start=1):
            logger.info("   %d. %s", index, task.splitlines()[0])
        return breakdown
