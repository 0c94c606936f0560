"""
Tests for the session todo list.
"""

import pytest

from fileagent.errors import InvalidArguments
from fileagent.todos import TodoList
from fileagent.types import Sequence, TodoPriority, TodoStatus


@pytest.fixture
def todos() -> TodoList:
    return TodoList(Sequence())


class TestTodoList:
    def test_ids_are_sequential(self, todos: TodoList) -> None:
        first = todos.create("one")
        second = todos.create("two", TodoPriority.HIGH)

        assert (first.id, second.id) == ("1", "2")
        assert second.priority == TodoPriority.HIGH

    def test_ids_shared_with_sequence_owner(self) -> None:
        sequence = Sequence()
        sequence.next()
        todos = TodoList(sequence)

        assert todos.create("x").id == "2"

    def test_empty_content_rejected(self, todos: TodoList) -> None:
        with pytest.raises(InvalidArguments):
            todos.create("   ")

    def test_single_in_progress(self, todos: TodoList) -> None:
        a = todos.create("a")
        b = todos.create("b")
        todos.update_status(a.id, TodoStatus.IN_PROGRESS)

        with pytest.raises(InvalidArguments, match="already in progress"):
            todos.update_status(b.id, TodoStatus.IN_PROGRESS)

        todos.update_status(a.id, TodoStatus.COMPLETED)
        todos.update_status(b.id, TodoStatus.IN_PROGRESS)
        assert [t.status for t in todos.items()] == [TodoStatus.COMPLETED, TodoStatus.IN_PROGRESS]

    def test_unknown_id(self, todos: TodoList) -> None:
        with pytest.raises(InvalidArguments, match="No todo"):
            todos.update_status("9", TodoStatus.COMPLETED)

    def test_reorder_requires_permutation(self, todos: TodoList) -> None:
        todos.create("a")
        todos.create("b")

        with pytest.raises(InvalidArguments, match="exactly once"):
            todos.reorder(["1"])
        with pytest.raises(InvalidArguments):
            todos.reorder(["1", "1"])

        assert [t.content for t in todos.reorder(["2", "1"])] == ["b", "a"]


class TestSummary:
    def test_empty(self, todos: TodoList) -> None:
        assert todos.summary() == "No todos."

    def test_progress_lines(self, todos: TodoList) -> None:
        todos.create("write tests", TodoPriority.HIGH)
        todos.create("refactor")
        todos.create("docs", TodoPriority.LOW)
        todos.update_status("1", TodoStatus.COMPLETED)
        todos.update_status("2", TodoStatus.IN_PROGRESS)

        assert todos.summary().splitlines() == [
            "Todo Progress: 1/3 (33% complete)",
            "Currently working on 1 task",
            "1 tasks remaining",
            "",
            "1. [DONE] write tests [HIGH] (id 1)",
            "2. [ACTIVE] refactor [MED] (id 2)",
            "3. [TODO] docs [LOW] (id 3)",
        ]
