import asyncio
from pathlib import Path

import pytest

from epicflow.agents import AgentExit, AgentResult, PlannerAgent, PlanProposal, PlanQuestion
from epicflow.agents.results import AgentError, AgentInterrupted
from epicflow.config import WorkflowConfig
from epicflow.errors import BranchError, PlanningError
from epicflow.interaction import Answered, Cancelled, Prompter, UserResponse
from epicflow.phases import (
    ApprovedPlan,
    PlanCancelled,
    PlanNegotiator,
    PlanNoOp,
    RunSummary,
    format_elapsed,
    is_reviewable_path,
    validate_branch_name,
)
from epicflow.phases.planning import FEEDBACK_PROMPT
from epicflow.session import EpicRun
from epicflow.state import ContextStore, EpicContext


class ScriptedPrompter(Prompter):
    def __init__(self, responses: list[UserResponse]) -> None:
        self.responses = list(responses)
        self.asked: list[tuple[str, str | None]] = []

    async def ask(self, message: str, default: str | None = None) -> UserResponse:
        self.asked.append((message, default))
        return self.responses.pop(0)


class ScriptedPlanner(PlannerAgent):
    def __init__(self, results: list[AgentResult]) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, str | None, str | None]] = []

    async def plan(
        self,
        task: str,
        prior_plan: str | None = None,
        feedback: str | None = None,
    ) -> AgentResult:
        self.calls.append((task, prior_plan, feedback))
        return self.results.pop(0)


def _run(tmp_path: Path) -> EpicRun:
    return EpicRun(context=EpicContext(task="Add auth"), store=ContextStore(tmp_path))


def _negotiate(
    tmp_path: Path, results: list[AgentResult], responses: list[UserResponse]
) -> tuple[object, ScriptedPlanner, ScriptedPrompter, EpicRun]:
    planner = ScriptedPlanner(results)
    prompter = ScriptedPrompter(responses)
    run = _run(tmp_path)
    outcome = asyncio.run(PlanNegotiator(planner, prompter).negotiate("Add auth", run))
    return outcome, planner, prompter, run


def _plan(text: str, branch: str | None = "feature/auth") -> AgentResult:
    return AgentExit(PlanProposal(plan=text, branch_name=branch))


def test_plan_is_approved_with_empty_feedback(tmp_path: Path) -> None:
    outcome, planner, prompter, run = _negotiate(tmp_path, [_plan("1. Login")], [Answered("")])

    assert outcome == ApprovedPlan(plan="1. Login", branch_name="feature/auth")
    assert planner.calls == [("Add auth", None, None)]
    assert prompter.asked == [(FEEDBACK_PROMPT, None)]
    assert run.agent_calls == 1


def test_feedback_triggers_a_revised_plan(tmp_path: Path) -> None:
    outcome, planner, _, run = _negotiate(
        tmp_path,
        [_plan("1. Login"), _plan("1. Login\n2. Logout")],
        [Answered("  add logout  "), Answered("")],
    )

    assert outcome == ApprovedPlan(plan="1. Login\n2. Logout", branch_name="feature/auth")
    assert planner.calls[1] == ("Add auth", "1. Login", "add logout")
    assert run.agent_calls == 2


def test_clarifying_question_is_answered_and_fed_back(tmp_path: Path) -> None:
    question = AgentExit(PlanProposal(question=PlanQuestion("Which provider?", "github")))
    outcome, planner, prompter, _ = _negotiate(
        tmp_path,
        [question, _plan("1. OAuth")],
        [Answered("gitlab"), Answered("")],
    )

    assert isinstance(outcome, ApprovedPlan)
    assert prompter.asked[0] == ("Which provider?", "github")
    assert planner.calls[1][2] == 'The user answered the question "Which provider?" with: "gitlab"'


def test_cancelling_feedback_cancels_planning(tmp_path: Path) -> None:
    outcome, _, _, _ = _negotiate(tmp_path, [_plan("1. Login")], [Cancelled()])

    assert isinstance(outcome, PlanCancelled)


def test_interrupted_planner_counts_as_cancellation(tmp_path: Path) -> None:
    outcome, _, prompter, _ = _negotiate(tmp_path, [AgentInterrupted()], [])

    assert isinstance(outcome, PlanCancelled)
    assert prompter.asked == []


def test_planner_without_plan_is_a_noop(tmp_path: Path) -> None:
    result = AgentExit(PlanProposal(reason="Auth already exists."))
    outcome, _, prompter, _ = _negotiate(tmp_path, [result], [])

    assert outcome == PlanNoOp("Auth already exists.")
    assert prompter.asked == []


def test_planner_error_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(PlanningError, match="backend exploded"):
        _negotiate(tmp_path, [AgentError("backend exploded")], [])


def test_approved_plan_needs_a_branch_name(tmp_path: Path) -> None:
    with pytest.raises(PlanningError, match="branch name"):
        _negotiate(tmp_path, [_plan("1. Login", branch=None)], [Answered("")])


@pytest.mark.parametrize("name", ["feature/auth", "fix_123", "Release-2/hotfix"])
def test_valid_branch_names(name: str) -> None:
    validate_branch_name(name)


@pytest.mark.parametrize("name", ["", "feature auth", "feat:x", "a..b", "emoji-✨"])
def test_invalid_branch_names(name: str) -> None:
    with pytest.raises(BranchError):
        validate_branch_name(name)


def test_overlong_branch_name_is_rejected() -> None:
    with pytest.raises(BranchError, match="too long"):
        validate_branch_name("a" * 256)
    validate_branch_name("a" * 255)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("src/app.py", True),
        ("web/App.TSX", True),
        ("Dockerfile", True),
        ("docs/guide.md", True),
        ("package-lock.json", False),
        ("frontend/yarn.lock", False),
        ("node_modules/lib/index.js", False),
        ("dist/bundle.js", False),
        ("static/app.min.js", False),
        ("static/app.js.map", False),
        ("assets/logo.png", False),
        ("LICENSE", False),
    ],
)
def test_reviewable_paths(path: str, expected: bool) -> None:
    assert is_reviewable_path(path, WorkflowConfig()) is expected


def test_format_elapsed() -> None:
    assert format_elapsed(0) == "0s"
    assert format_elapsed(59.9) == "59s"
    assert format_elapsed(61) == "1m 1s"
    assert format_elapsed(3 * 3600 + 5) == "3h 0m 5s"


def test_run_summary_lines_include_next_steps() -> None:
    summary = RunSummary(
        task="Add auth",
        branch_name="feature/auth",
        base_branch="main",
        tasks_completed=2,
        total_tasks=2,
        elapsed_seconds=75,
        commit_messages=["feat: Add model", "feat: Add API"],
        flagged_tasks=["Add API"],
    )

    lines = summary.lines()

    assert "Tasks completed: 2/2" in lines
    assert "Commits created: 2" in lines
    assert "Elapsed: 1m 15s" in lines
    assert "   2. feat: Add API" in lines
    assert "   - Add API" in lines
    assert "   1. Push the branch: git push -u origin feature/auth" in lines
    assert "   2. Open a pull request against main" in lines
