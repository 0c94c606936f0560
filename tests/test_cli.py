"""
Tests for the command-line entry point.
"""

import tempfile
from pathlib import Path

import pytest

from fileagent import cli
from fileagent.cli import apply_overrides, build_parser, main
from fileagent.config import AgentConfig, LLMConfig
from fileagent.llm import ControllerReply


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class FakeClient:
    """Answers immediately and records whether it was closed."""

    def __init__(self) -> None:
        self.closed = False

    def send(self, messages, tool_schemas, system=""):
        return ControllerReply(final_answer="done", content="done")

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class TestMain:
    def test_missing_api_key(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LLM_API_KEY", raising=False)

        assert main(["do something", "--root", str(temp_dir)]) == 2

    def test_bad_root(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_API_KEY", "k")

        assert main(["task", "--root", str(temp_dir / "missing")]) == 2

    def test_client_closed_after_run(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_API_KEY", "k")
        clients: list[FakeClient] = []

        def make_client(config: LLMConfig) -> FakeClient:
            clients.append(FakeClient())
            return clients[-1]

        monkeypatch.setattr(cli, "LLMClient", make_client)

        assert main(["task", "--root", str(temp_dir)]) == 0
        assert clients[0].closed


class TestOverrides:
    def test_flags_override_environment(self) -> None:
        args = build_parser().parse_args([
            "task", "--model", "m2", "--max-iterations", "5", "--max-workers", "2", "--tool-timeout", "1.5",
        ])
        config = apply_overrides(AgentConfig(llm=LLMConfig(api_key="k")), args)

        assert config.llm.model_id == "m2"
        assert config.loop.max_iterations == 5
        assert config.dispatch.max_workers == 2
        assert config.dispatch.tool_timeout_seconds == 1.5

    def test_no_flags_keep_defaults(self) -> None:
        config = apply_overrides(AgentConfig(llm=LLMConfig(api_key="k")), build_parser().parse_args(["task"]))

        assert config.loop.max_iterations == 100
        assert config.dispatch.tool_timeout_seconds == 660.0
