from __future__ import annotations

import time
from dataclasses import dataclass, field

from epicflow.state.context import ContextStore, EpicContext, UsageSnapshot


@dataclass(slots=True)
class EpicRun:
    """Mutable state for one orchestrator invocation."""

    context: EpicContext
    store: ContextStore
    started_at: float = field(default_factory=time.monotonic)
    commit_messages: list[str] = field(default_factory=list)
    flagged_tasks: list[str] = field(default_factory=list)
    agent_calls: int = 0
    active_branch: str | None = None

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def count_agent_call(self) -> None:
        self.agent_calls += 1

    def checkpoint(self, label: str | None = None) -> None:
        if label is not None:
            self.context.usages.append(
                UsageSnapshot(
                    label=label,
                    elapsed_seconds=self.elapsed_seconds,
                    agent_calls=self.agent_calls,
                )
            )
        self.store.save(self.context)
