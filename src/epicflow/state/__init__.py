from epicflow.state.context import ContextStore, EpicContext, UsageSnapshot
from epicflow.state.files import prepare_state_dir
from epicflow.state.todos import TodoItem, TodoStore

__all__ = [
    "ContextStore",
    "EpicContext",
    "TodoItem",
    "TodoStore",
    "UsageSnapshot",
    "prepare_state_dir",
]
