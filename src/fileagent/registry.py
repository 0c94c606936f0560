"""
Tool Registry - The only way to affect the workspace.

The controller cannot touch files or run commands directly. It emits tool
calls, and only tools registered here can be called. Arguments are checked
against each tool's JSON Schema before the handler runs, so a malformed
call never has side effects.

The registry is built once at startup and only read afterwards, which is
what makes it safe to share with the dispatcher's worker threads.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from fileagent.errors import InvalidArguments, ToolNotFound
from fileagent.types import OutputKind

logger = logging.getLogger(__name__)

MAX_REPORTED_SCHEMA_ERRORS = 5


class ToolHandler(Protocol):
    """Protocol for tool handler functions."""
    def __call__(self, **kwargs: Any) -> str: ...


class ToolAccess(str, Enum):
    """Whether a tool only reads its resource or may change it."""
    READ_ONLY = "read_only"
    WRITE = "write"


@dataclass
class Tool:
    """
    Definition of a tool that the controller can use.

    A tool has:
    - name: Unique identifier
    - description: What the tool does (shown to the model)
    - input_schema: JSON Schema for the tool's arguments
    - handler: Function that executes the tool
    - access: read-only or write, used for conflict detection
    - output_kind: how the shaper treats the raw output, either fixed or
      computed from the arguments
    - resource_key: extracts the resource the call touches, or None
    """
    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    access: ToolAccess = ToolAccess.READ_ONLY
    output_kind: OutputKind | Callable[[dict[str, Any]], OutputKind] = OutputKind.TEXT
    resource_key: Callable[[dict[str, Any]], str | None] | None = None
    _validator: Draft202012Validator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        try:
            Draft202012Validator.check_schema(self.input_schema)
        except SchemaError as e:
            raise ValueError(f"Invalid input schema for tool {self.name}: {e.message}") from e
        self._validator = Draft202012Validator(self.input_schema)

    @property
    def is_write(self) -> bool:
        return self.access == ToolAccess.WRITE

    def kind_for(self, arguments: dict[str, Any]) -> OutputKind:
        if callable(self.output_kind):
            return self.output_kind(arguments)
        return self.output_kind

    def key_for(self, arguments: dict[str, Any]) -> str | None:
        if self.resource_key is None:
            return None
        return self.resource_key(arguments)

    def validate(self, arguments: dict[str, Any]) -> None:
        """Raise InvalidArguments if the arguments do not match the schema."""
        errors = sorted(self._validator.iter_errors(arguments), key=lambda err: list(err.path))
        if errors:
            messages = "; ".join(
                f"{'/'.join(map(str, err.path)) or '<root>'}: {err.message}"
                for err in errors[:MAX_REPORTED_SCHEMA_ERRORS]
            )
            raise InvalidArguments(
                f"Arguments do not match the schema: {messages}",
                tool_name=self.name,
                step="schema_validation",
            )

    def to_schema(self) -> dict[str, Any]:
        """Tool definition in the Messages API format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class ToolRegistry:
    """Registry of available tools, keyed by name."""

    _tools: dict[str, Tool] = field(default_factory=dict)

    def register(self, tool: Tool) -> None:
        """Register a tool. Registering a name twice is a startup error."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_function(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        handler: ToolHandler,
        access: ToolAccess = ToolAccess.READ_ONLY,
        output_kind: OutputKind | Callable[[dict[str, Any]], OutputKind] = OutputKind.TEXT,
        resource_key: Callable[[dict[str, Any]], str | None] | None = None,
    ) -> Tool:
        """Convenience method to register a function as a tool."""
        tool = Tool(
            name=name,
            description=description,
            input_schema=input_schema,
            handler=handler,
            access=access,
            output_kind=output_kind,
            resource_key=resource_key,
        )
        self.register(tool)
        return tool

    def get(self, name: str) -> Tool:
        """Get a tool by name, raising ToolNotFound if it is unknown."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(
                f"Unknown tool '{name}'. Available tools: {', '.join(sorted(self._tools))}",
                tool_name=name,
                step="lookup",
            )
        return tool

    def resolve(self, name: str, arguments: dict[str, Any]) -> Tool:
        """Look up a tool and validate arguments against its schema."""
        tool = self.get(name)
        tool.validate(arguments)
        return tool

    def dispatch_one(self, name: str, arguments: dict[str, Any]) -> str:
        """
        Validate and invoke a single tool, returning its raw output.

        Handler exceptions propagate to the caller.
        """
        tool = self.resolve(name, arguments)
        logger.info(f"Executing tool: {name}")
        return str(tool.handler(**arguments))

    def get_schemas(self) -> list[dict[str, Any]]:
        """Get schemas for all registered tools, in registration order."""
        return [tool.to_schema() for tool in self._tools.values()]

    @property
    def tool_names(self) -> list[str]:
        """List of registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
