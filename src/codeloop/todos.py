"""Todo list the agent keeps for itself, mutated only through the todo tool."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from codeloop.types import TodoItem


class TodoList:
    """Ordered list of TodoItems."""

    def __init__(self, items: list[TodoItem] | None = None) -> None:
        self._items: list[TodoItem] = list(items or [])

    def add(self, task: str) -> TodoItem:
        item = TodoItem(task=task)
        self._items.append(item)
        return item

    def add_many(self, tasks: list[str]) -> list[TodoItem]:
        """Add several tasks sharing one creation timestamp."""
        now = datetime.now()
        added = [TodoItem(task=task, created_at=now) for task in tasks]
        self._items.extend(added)
        return added

    def complete(self, task: str) -> bool:
        """Mark the first pending item with this exact task as done."""
        for item in self._items:
            if item.task == task and not item.completed:
                item.completed = True
                return True
        return False

    def delete(self, task: str) -> bool:
        for index, item in enumerate(self._items):
            if item.task == task:
                del self._items[index]
                return True
        return False

    def clear(self) -> None:
        self._items.clear()

    def items(self) -> list[TodoItem]:
        return list(self._items)

    def stats(self) -> dict[str, int]:
        completed = sum(1 for item in self._items if item.completed)
        return {
            "total": len(self._items),
            "completed": completed,
            "pending": len(self._items) - completed,
        }

    def to_list(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    def load(self, data: list[dict[str, Any]]) -> None:
        """Replace every item with the serialized items in data."""
        self._items = [TodoItem.from_dict(entry) for entry in data]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> TodoList:
        return cls([TodoItem.from_dict(entry) for entry in data])

    def __len__(self) -> int:
        return len(self._items)
