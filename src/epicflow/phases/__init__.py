from epicflow.phases.branching import BranchManager, validate_branch_name
from epicflow.phases.decompose import TaskDecomposer
from epicflow.phases.execution import TaskExecutor, is_reviewable_path
from epicflow.phases.finalize import Finalizer
from epicflow.phases.planning import (
    ApprovedPlan,
    PlanCancelled,
    PlanNegotiator,
    PlanningOutcome,
    PlanNoOp,
)
from epicflow.phases.preflight import PreflightChecker
from epicflow.phases.summary import RunSummary, format_elapsed

__all__ = [
    "ApprovedPlan",
    "BranchManager",
    "Finalizer",
    "PlanCancelled",
    "PlanNegotiator",
    "PlanNoOp",
    "PlanningOutcome",
    "PreflightChecker",
    "RunSummary",
    "TaskDecomposer",
    "TaskExecutor",
    "format_elapsed",
    "is_reviewable_path",
    "validate_branch_name",
]
