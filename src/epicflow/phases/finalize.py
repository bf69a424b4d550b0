from __future__ import annotations

import logging

from epicflow.phases.summary import RunSummary
from epicflow.session import EpicRun
from epicflow.state.context import ContextStore
from epicflow.state.todos import TodoStore

logger = logging.getLogger(__name__)


class Finalizer:
    def __init__(self, store: ContextStore, todos: TodoStore) -> None:
        self.store = store
        self.todos = todos

    def build_summary(self, run: EpicRun) -> RunSummary:
        items = self.todos.list_items()
        return RunSummary(
            task=run.context.task or "",
            branch_name=run.context.branch_name or "",
            base_branch=run.context.base_branch,
            tasks_completed=sum(1 for item in items if item.status == "completed"),
            total_tasks=len(items),
            elapsed_seconds=run.elapsed_seconds,
            commit_messages=list(run.commit_messages),
            flagged_tasks=list(run.flagged_tasks),
        )

    def finalize(self, run: EpicRun) -> RunSummary:
        summary = self.build_summary(run)
        for line in summary.lines():
            logger.info(line)

        self.store.remove()
        self.todos.clear()
        logger.debug("Removed epic state from %s", self.store.path.parent)
        return summary
