"""
In-memory todo list for one session.

The controller uses this to plan multi-step work. Todos are mutated only
by create, update_status and reorder, and at most one todo may be in
progress at a time. Ids come from the session's Sequence.
"""

import logging
import threading

from fileagent.errors import InvalidArguments
from fileagent.types import Sequence, Todo, TodoPriority, TodoStatus

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    TodoStatus.COMPLETED: "[DONE]",
    TodoStatus.IN_PROGRESS: "[ACTIVE]",
    TodoStatus.PENDING: "[TODO]",
}

PRIORITY_LABELS = {
    TodoPriority.HIGH: "[HIGH]",
    TodoPriority.MEDIUM: "[MED]",
    TodoPriority.LOW: "[LOW]",
}


class TodoList:
    """Ordered todos owned by a single session."""

    def __init__(self, sequence: Sequence) -> None:
        self._sequence = sequence
        self._todos: list[Todo] = []
        self._lock = threading.Lock()

    def _error(self, message: str) -> InvalidArguments:
        return InvalidArguments(message, tool_name="todo_write", resource_key="todo")

    def _find(self, todo_id: str) -> Todo:
        for todo in self._todos:
            if todo.id == todo_id:
                return todo
        raise self._error(f"No todo with id '{todo_id}'")

    def create(self, content: str, priority: TodoPriority = TodoPriority.MEDIUM) -> Todo:
        if not content.strip():
            raise self._error("Todo content cannot be empty")
        with self._lock:
            todo = Todo(id=str(self._sequence.next()), content=content.strip(), priority=priority)
            self._todos.append(todo)
        logger.info(f"Created todo {todo.id}: {todo.content}")
        return todo

    def update_status(self, todo_id: str, status: TodoStatus) -> Todo:
        with self._lock:
            todo = self._find(todo_id)
            if status == TodoStatus.IN_PROGRESS:
                active = [t for t in self._todos if t.status == TodoStatus.IN_PROGRESS and t is not todo]
                if active:
                    raise self._error(
                        f"Todo '{active[0].id}' is already in progress. "
                        "Complete it before starting another."
                    )
            todo.status = status
        logger.info(f"Todo {todo_id} -> {status.value}")
        return todo

    def reorder(self, ids: list[str]) -> list[Todo]:
        """Reorder todos. ids must be a permutation of the current ids."""
        with self._lock:
            current = [t.id for t in self._todos]
            if sorted(ids) != sorted(current):
                raise self._error(
                    f"Reorder must list every todo id exactly once; current ids: {', '.join(current)}"
                )
            by_id = {t.id: t for t in self._todos}
            self._todos = [by_id[i] for i in ids]
            return list(self._todos)

    def items(self) -> list[Todo]:
        with self._lock:
            return list(self._todos)

    def summary(self) -> str:
        """Progress summary shown to the controller after every change."""
        todos = self.items()
        if not todos:
            return "No todos."
        completed = sum(t.status == TodoStatus.COMPLETED for t in todos)
        in_progress = sum(t.status == TodoStatus.IN_PROGRESS for t in todos)
        pending = sum(t.status == TodoStatus.PENDING for t in todos)
        total = len(todos)

        lines = [f"Todo Progress: {completed}/{total} ({completed * 100 // total}% complete)"]
        if in_progress:
            lines.append("Currently working on 1 task")
        if pending:
            lines.append(f"{pending} tasks remaining")
        lines.append("")
        for i, todo in enumerate(todos, start=1):
            lines.append(
                f"{i}. {STATUS_LABELS[todo.status]} {todo.content} "
                f"{PRIORITY_LABELS[todo.priority]} (id {todo.id})"
            )
        return "\n".join(lines)
