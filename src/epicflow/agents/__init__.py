from epicflow.agents.base import RoleAgent
from epicflow.agents.breakdown import TaskBreakdown, TaskBreakdownAgent
from epicflow.agents.coder import CodeOutcome, CoderAgent
from epicflow.agents.planner import PlannerAgent, PlanProposal, PlanQuestion
from epicflow.agents.results import (
    AgentError,
    AgentExit,
    AgentInterrupted,
    AgentResult,
    AgentUsageExceeded,
)
from epicflow.agents.reviewer import ReviewerAgent, ReviewFinding, ReviewReport

__all__ = [
    "AgentError",
    "AgentExit",
    "AgentInterrupted",
    "AgentResult",
    "AgentUsageExceeded",
    "CodeOutcome",
    "CoderAgent",
    "PlanProposal",
    "PlanQuestion",
    "PlannerAgent",
    "ReviewFinding",
    "ReviewReport",
    "ReviewerAgent",
    "RoleAgent",
    "TaskBreakdown",
    "TaskBreakdownAgent",
]
