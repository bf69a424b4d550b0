from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from epicflow.errors import ContextError
from epicflow.state.files import read_json, remove_file, utcnow_iso, write_json_atomic

TodoStatus = Literal["open", "completed", "closed"]
TODO_STATUSES: frozenset[str] = frozenset({"open", "completed", "closed"})


@dataclass(slots=True)
class TodoItem:
    id: str
    title: str
    description: str = ""
    status: TodoStatus = "open"
    created_at: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TodoItem:
        status = str(payload.get("status", "open"))
        if status not in TODO_STATUSES:
            raise ContextError(f"Todo item {payload.get('id')!r} has unknown status {status!r}.")
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title", "")),
            description=str(payload.get("description", "")),
            status=status,  # type: ignore[arg-type]
            created_at=str(payload.get("createdAt") or utcnow_iso()),
        )


class TodoStore:
    """File-backed todo list; items keep insertion order."""

    FILE_NAME = "todos.json"

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.path = state_dir / self.FILE_NAME

    def _read(self) -> list[TodoItem]:
        raw = read_json(self.path)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ContextError(f"Todo file {self.path} must contain a JSON list.")
        return [TodoItem.from_dict(item) for item in raw if isinstance(item, dict)]

    def _write(self, items: list[TodoItem]) -> None:
        write_json_atomic(self.path, [item.to_dict() for item in items])

    def list_items(self, status: TodoStatus | None = None) -> list[TodoItem]:
        items = self._read()
        if status is None:
            return items
        return [item for item in items if item.status == status]

    def add(self, title: str, description: str = "") -> TodoItem:
        items = self._read()
        next_id = max((int(item.id) for item in items if item.id.isdigit()), default=0) + 1
        item = TodoItem(id=str(next_id), title=title, description=description)
        items.append(item)
        self._write(items)
        return item

    def update_status(self, item_id: str, status: TodoStatus) -> TodoItem:
        if status not in TODO_STATUSES:
            raise ValueError(f"Unknown todo status: {status}")
        items = self._read()
        for item in items:
            if item.id == item_id:
                item.status = status
                self._write(items)
                return item
        raise ContextError(f"Todo item not found: {item_id}")

    def clear(self) -> None:
        remove_file(self.path)
