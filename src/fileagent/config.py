"""
Configuration for the agent system.

All configuration is loaded from environment variables and can be
overridden field by field (the CLI does this from its flags). Nothing is
read from files.

The shaping limits are the context-window budget for tool results. They
are enforced on every result, not advisory.
"""

import os
from dataclasses import dataclass, field


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class LLMConfig:
    """Configuration for the language-model client."""
    api_key: str
    api_url: str = "https://api.anthropic.com/v1/messages"
    model_id: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8192
    temperature: float = 0.7
    timeout_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        return cls(
            api_key=os.getenv("LLM_API_KEY", ""),
            api_url=os.getenv("LLM_API_URL", "https://api.anthropic.com/v1/messages"),
            model_id=os.getenv("LLM_MODEL", "claude-sonnet-4-20250514"),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "8192")),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            timeout_seconds=float(os.getenv("LLM_TIMEOUT", "300")),
        )


@dataclass(frozen=True)
class ShapingLimits:
    """
    Size budgets applied to every tool result.

    grep_truncate_threshold: search output keeps at most this many lines.
    read_truncate_threshold: file reads above this many lines are sampled.
    line_char_limit: any single retained line is clipped to this length.
    tool_output_limit: hard cap on the final text, in characters.
    batch_output_limit: cap on the combined text of one batch's results.
    """
    grep_truncate_threshold: int = 30
    read_truncate_threshold: int = 2000
    line_char_limit: int = 2000
    tool_output_limit: int = 30000
    read_sample_ranges: int = 5
    read_sample_lines: int = 40
    listing_truncate_threshold: int = 100
    listing_head_lines: int = 50
    listing_tail_lines: int = 10
    batch_output_limit: int = 120000

    def __post_init__(self) -> None:
        if self.tool_output_limit < 1000:
            raise ValueError("tool_output_limit must be at least 1000 characters")
        if self.batch_output_limit < 1000:
            raise ValueError("batch_output_limit must be at least 1000 characters")
        if self.read_sample_ranges < 2:
            raise ValueError("read_sample_ranges must be at least 2")
        for name in ("grep_truncate_threshold", "read_truncate_threshold", "line_char_limit"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive")

    @classmethod
    def from_env(cls) -> "ShapingLimits":
        """Load configuration from environment variables."""
        return cls(
            grep_truncate_threshold=int(os.getenv("SHAPING_GREP_TRUNCATE_THRESHOLD", "30")),
            read_truncate_threshold=int(os.getenv("SHAPING_READ_TRUNCATE_THRESHOLD", "2000")),
            line_char_limit=int(os.getenv("SHAPING_LINE_CHAR_LIMIT", "2000")),
            tool_output_limit=int(os.getenv("SHAPING_TOOL_OUTPUT_LIMIT", "30000")),
            batch_output_limit=int(os.getenv("SHAPING_BATCH_OUTPUT_LIMIT", "120000")),
        )


@dataclass
class DispatchConfig:
    """
    Configuration for the parallel dispatcher.

    tool_timeout_seconds bounds a single call from the moment it starts.
    batch_timeout_seconds bounds the whole batch. None disables a bound.
    """
    max_workers: int = 8
    tool_timeout_seconds: float | None = 660.0
    batch_timeout_seconds: float | None = None

    @classmethod
    def from_env(cls) -> "DispatchConfig":
        """Load configuration from environment variables."""
        tool_timeout = _env_float("DISPATCH_TOOL_TIMEOUT")
        return cls(
            max_workers=int(os.getenv("DISPATCH_MAX_WORKERS", "8")),
            tool_timeout_seconds=tool_timeout if tool_timeout is not None else 660.0,
            batch_timeout_seconds=_env_float("DISPATCH_BATCH_TIMEOUT"),
        )


@dataclass
class LoopConfig:
    """
    Configuration for the orchestration loop.

    max_iterations stops a controller that never converges.
    """
    max_iterations: int = 100

    @classmethod
    def from_env(cls) -> "LoopConfig":
        """Load configuration from environment variables."""
        return cls(
            max_iterations=int(os.getenv("AGENT_MAX_ITERATIONS", "100")),
        )


@dataclass
class AgentConfig:
    """Combined configuration for the entire agent system."""
    llm: LLMConfig
    limits: ShapingLimits = field(default_factory=ShapingLimits)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load all configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            limits=ShapingLimits.from_env(),
            dispatch=DispatchConfig.from_env(),
            loop=LoopConfig.from_env(),
        )
