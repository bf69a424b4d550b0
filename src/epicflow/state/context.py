from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from epicflow.errors import ContextError
from epicflow.state.files import read_json, remove_file, utcnow_iso, write_json_atomic


@dataclass(slots=True)
class UsageSnapshot:
    label: str
    elapsed_seconds: float
    agent_calls: int
    recorded_at: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "recordedAt": self.recorded_at,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "agentCalls": self.agent_calls,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> UsageSnapshot:
        return cls(
            label=str(payload.get("label", "")),
            elapsed_seconds=float(payload.get("elapsedSeconds", 0.0)),
            agent_calls=int(payload.get("agentCalls", 0)),
            recorded_at=str(payload.get("recordedAt") or utcnow_iso()),
        )


@dataclass(slots=True)
class EpicContext:
    task: str | None = None
    plan: str | None = None
    branch_name: str | None = None
    base_branch: str | None = None
    overview: str | None = None
    usages: list[UsageSnapshot] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.task

    @property
    def is_resumable(self) -> bool:
        """True when planning and breakdown already happened for this epic."""
        return bool(self.plan) and bool(self.branch_name)

    def validate(self) -> None:
        if self.plan and not self.branch_name:
            raise ContextError(
                "Persisted epic has an approved plan but no branch name; "
                "refusing to re-plan over work that may already exist.",
                suggestion="Inspect the state file, or run `epicflow reset` to start over.",
            )
        if self.branch_name and not self.plan:
            raise ContextError(
                f"Persisted epic references branch '{self.branch_name}' but has no plan.",
                suggestion="Inspect the state file, or run `epicflow reset` to start over.",
            )
        if (self.plan or self.branch_name) and not self.task:
            raise ContextError(
                "Persisted epic has a plan but no task description.",
                suggestion="Inspect the state file, or run `epicflow reset` to start over.",
            )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"task": self.task}
        if self.plan is not None:
            payload["plan"] = self.plan
        if self.branch_name is not None:
            payload["branchName"] = self.branch_name
        if self.base_branch is not None:
            payload["baseBranch"] = self.base_branch
        if self.overview is not None:
            payload["overview"] = self.overview
        if self.usages:
            payload["usages"] = [usage.to_dict() for usage in self.usages]
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> EpicContext:
        def _optional_str(key: str) -> str | None:
            value = payload.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ContextError(f"Persisted epic field '{key}' must be a string.")
            return value or None

        raw_usages = payload.get("usages") or []
        if not isinstance(raw_usages, list):
            raise ContextError("Persisted epic field 'usages' must be a list.")
        return cls(
            task=_optional_str("task"),
            plan=_optional_str("plan"),
            branch_name=_optional_str("branchName"),
            base_branch=_optional_str("baseBranch"),
            overview=_optional_str("overview"),
            usages=[UsageSnapshot.from_dict(item) for item in raw_usages if isinstance(item, dict)],
        )


class ContextStore:
    FILE_NAME = "context.json"

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.path = state_dir / self.FILE_NAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> EpicContext:
        raw = read_json(self.path)
        if raw is None:
            return EpicContext()
        if not isinstance(raw, dict):
            raise ContextError(
                f"State file {self.path} must contain a JSON object.",
                suggestion="Inspect the state file, or run `epicflow reset` to start over.",
            )
        context = EpicContext.from_dict(raw)
        context.validate()
        return context

    def save(self, context: EpicContext) -> None:
        context.validate()
        write_json_atomic(self.path, context.to_dict())

    def remove(self) -> None:
        remove_file(self.path)
