"""
Error taxonomy for tool execution and the orchestration loop.

Tool-level errors are raised by the registry, the edit executor and the
tool handlers. The dispatcher is the only place that turns them into
Failure values, so a failing call never aborts its siblings.

Loop-level errors (ClientUnavailable, MaxIterationsExceeded) end a run and
are surfaced as the run's final outcome.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Every failure a caller can observe."""
    TOOL_NOT_FOUND = "tool_not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    AMBIGUOUS_MATCH = "ambiguous_match"
    NO_MATCH = "no_match"
    TIMEOUT = "timeout"
    IO_FAILURE = "io_failure"
    TOOL_FAILED = "tool_failed"
    CLIENT_UNAVAILABLE = "client_unavailable"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"


class FileAgentError(Exception):
    """Base class for all errors raised by this package."""
    kind: ErrorKind = ErrorKind.TOOL_FAILED


class ToolError(FileAgentError):
    """
    An error attributable to a single tool call.

    Carries enough detail to retry narrower: which tool, which resource
    key and which validation step failed.
    """

    def __init__(
        self,
        message: str,
        *,
        tool_name: str | None = None,
        resource_key: str | None = None,
        step: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.tool_name = tool_name
        self.resource_key = resource_key
        self.step = step


class ToolNotFound(ToolError):
    kind = ErrorKind.TOOL_NOT_FOUND


class InvalidArguments(ToolError):
    kind = ErrorKind.INVALID_ARGUMENTS


class AmbiguousMatch(ToolError):
    kind = ErrorKind.AMBIGUOUS_MATCH


class NoMatch(ToolError):
    kind = ErrorKind.NO_MATCH


class ToolTimeout(ToolError):
    kind = ErrorKind.TIMEOUT


class IOFailure(ToolError):
    kind = ErrorKind.IO_FAILURE


class ClientUnavailable(FileAgentError):
    """The language-model client could not produce a reply."""
    kind = ErrorKind.CLIENT_UNAVAILABLE


class MaxIterationsExceeded(FileAgentError):
    kind = ErrorKind.MAX_ITERATIONS_EXCEEDED
