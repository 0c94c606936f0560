"""
Core types for the orchestration engine.

These are the values that flow between the loop, the dispatcher, the
shaper and the tools. Results are tagged variants (Success | Failure) so
a caller always has to look at which one it got.
"""

import itertools
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fileagent.errors import ErrorKind


class Role(str, Enum):
    """Message roles in the conversation."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """
    A single message in the conversation history.

    Content is either plain text or a list of content blocks
    (text, tool_use, tool_result) in the Messages API format.
    """
    role: Role
    content: str | list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ToolCallRequest:
    """
    A request from the controller to execute a tool.

    The id is unique within a batch. Request order decides result order,
    never execution order.
    """
    id: str
    tool_name: str
    arguments: dict[str, Any]


class OutputKind(str, Enum):
    """How a tool's raw output should be shaped."""
    SEARCH = "search"
    FILE_READ = "file_read"
    LISTING = "listing"
    TEXT = "text"


class SamplingStrategy(str, Enum):
    NONE = "none"
    HEAD_TAIL = "head_tail"
    INTERVAL = "interval"


@dataclass(frozen=True)
class ShapedOutput:
    """
    Size-bounded representation of a tool's raw output.

    If truncated is True the text ends with an omission marker saying
    what was left out and how to get it back.
    """
    text: str
    truncated: bool
    original_size: int
    sampling_strategy: SamplingStrategy = SamplingStrategy.NONE


@dataclass(frozen=True)
class ErrorInfo:
    """Everything needed to understand a failed call and retry narrower."""
    kind: ErrorKind
    message: str
    tool_name: str | None = None
    resource_key: str | None = None
    step: str | None = None

    def render(self) -> str:
        parts = [f"Error ({self.kind.value})"]
        if self.tool_name:
            parts.append(f"tool={self.tool_name}")
        if self.resource_key:
            parts.append(f"resource={self.resource_key}")
        if self.step:
            parts.append(f"step={self.step}")
        return f"{' '.join(parts)}: {self.message}"


@dataclass(frozen=True)
class Success:
    output: ShapedOutput


@dataclass(frozen=True)
class Failure:
    error: ErrorInfo


@dataclass
class ToolCallResult:
    """
    The result of one call in a batch.

    Created by the dispatcher once the call completes and consumed
    immediately by the loop. Never persisted.
    """
    id: str
    tool_name: str
    outcome: Success | Failure
    resource_key: str | None = None

    @property
    def success(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def content(self) -> str:
        """Text handed back to the controller."""
        if isinstance(self.outcome, Success):
            return self.outcome.output.text
        return self.outcome.error.render()


class MatchOccurrence(str, Enum):
    """Which occurrences of match_text an edit operation targets."""
    ALL = "all"
    FIRST = "first"
    NTH_WITH_CONTEXT = "nth_with_context"


@dataclass(frozen=True)
class EditOperation:
    """
    One text substitution inside an edit transaction.

    For NTH_WITH_CONTEXT the location is where
    context_before + match_text + context_after occurs. It must occur
    exactly once, unless nth (1-based) picks one of several.
    """
    match_text: str
    replacement_text: str
    match_occurrence: MatchOccurrence = MatchOccurrence.NTH_WITH_CONTEXT
    context_before: str = ""
    context_after: str = ""
    nth: int | None = None


class TodoStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TodoPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class Todo:
    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING
    priority: TodoPriority = TodoPriority.MEDIUM


class Sequence:
    """
    Monotonic id generator.

    Owned by a session and passed by reference to whoever needs ids, so
    two sessions never share a counter.
    """

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)
