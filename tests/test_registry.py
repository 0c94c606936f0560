"""
Tests for ToolRegistry - the only way to affect the workspace.

Unknown tools and malformed arguments must be rejected before any
handler runs.
"""

import pytest

from fileagent.errors import ErrorKind, InvalidArguments, ToolNotFound
from fileagent.registry import Tool, ToolAccess, ToolRegistry
from fileagent.types import OutputKind


def echo_schema() -> dict:
    return {
        "type": "object",
        "properties": {"text": {"type": "string"}, "times": {"type": "integer", "minimum": 1}},
        "required": ["text"],
        "additionalProperties": False,
    }


class TestToolDefinition:
    """Test tool definition and schema generation."""

    def test_tool_to_schema(self) -> None:
        tool = Tool(
            name="echo",
            description="Echo input",
            input_schema=echo_schema(),
            handler=lambda text, times=1: text * times,
        )

        schema = tool.to_schema()

        assert schema["name"] == "echo"
        assert schema["description"] == "Echo input"
        assert schema["input_schema"]["required"] == ["text"]

    def test_invalid_schema_rejected_at_definition(self) -> None:
        with pytest.raises(ValueError, match="Invalid input schema"):
            Tool(
                name="broken",
                description="",
                input_schema={"type": "not-a-type"},
                handler=lambda: "",
            )

    def test_output_kind_from_arguments(self) -> None:
        tool = Tool(
            name="search",
            description="",
            input_schema={"type": "object"},
            handler=lambda **kwargs: "",
            output_kind=lambda args: OutputKind.SEARCH if args.get("content") else OutputKind.LISTING,
        )

        assert tool.kind_for({"content": True}) == OutputKind.SEARCH
        assert tool.kind_for({}) == OutputKind.LISTING

    def test_resource_key_defaults_to_none(self) -> None:
        tool = Tool(name="t", description="", input_schema={"type": "object"}, handler=lambda: "")

        assert tool.key_for({}) is None
        assert not tool.is_write


class TestToolRegistry:
    """Test the tool registry."""

    def test_register_and_get_tool(self) -> None:
        registry = ToolRegistry()
        tool = registry.register_function("echo", "Echo", echo_schema(), lambda text, times=1: text)

        assert registry.get("echo") is tool
        assert "echo" in registry
        assert len(registry) == 1
        assert registry.tool_names == ["echo"]

    def test_duplicate_registration_rejected(self) -> None:
        registry = ToolRegistry()
        registry.register_function("echo", "Echo", echo_schema(), lambda text: text)

        with pytest.raises(ValueError, match="already registered"):
            registry.register_function("echo", "Echo again", echo_schema(), lambda text: text)

    def test_unknown_tool(self) -> None:
        registry = ToolRegistry()

        with pytest.raises(ToolNotFound) as exc_info:
            registry.dispatch_one("missing", {})

        assert exc_info.value.kind == ErrorKind.TOOL_NOT_FOUND
        assert exc_info.value.tool_name == "missing"

    def test_dispatch_one_calls_handler(self) -> None:
        registry = ToolRegistry()
        registry.register_function("echo", "Echo", echo_schema(), lambda text, times=1: text * times)

        assert registry.dispatch_one("echo", {"text": "ab", "times": 2}) == "abab"

    def test_invalid_arguments_never_reach_handler(self) -> None:
        calls: list[dict] = []

        def handler(**kwargs: object) -> str:
            calls.append(kwargs)
            return "ran"

        registry = ToolRegistry()
        registry.register_function("echo", "Echo", echo_schema(), handler)

        for bad in ({}, {"text": 3}, {"text": "a", "times": 0}, {"text": "a", "extra": True}):
            with pytest.raises(InvalidArguments) as exc_info:
                registry.dispatch_one("echo", bad)
            assert exc_info.value.step == "schema_validation"

        assert calls == []

    def test_error_message_names_the_field(self) -> None:
        registry = ToolRegistry()
        registry.register_function("echo", "Echo", echo_schema(), lambda text: text)

        with pytest.raises(InvalidArguments, match="times"):
            registry.dispatch_one("echo", {"text": "a", "times": "many"})

    def test_schemas_in_registration_order(self) -> None:
        registry = ToolRegistry()
        registry.register_function("b", "B", {"type": "object"}, lambda: "")
        registry.register_function("a", "A", {"type": "object"}, lambda: "", access=ToolAccess.WRITE)

        assert [s["name"] for s in registry.get_schemas()] == ["b", "a"]
        assert registry.get("a").is_write
