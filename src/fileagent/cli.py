"""
Command-line entry point.

    fileagent "rename foo to bar in src/" --root ./project

Exit status: 0 when the task completed, 1 when it completed but some tool
calls failed, 2 when the run could not finish (controller unavailable or
iteration limit reached).
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from fileagent.config import AgentConfig
from fileagent.llm import LLMClient
from fileagent.loop import OrchestrationLoop, RunStatus

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileagent",
        description="Run a language-model agent over a local workspace",
    )
    parser.add_argument("task", help="The task to perform")
    parser.add_argument("--root", default=".", help="Workspace root (default: current directory)")
    parser.add_argument("--model", help="Model id (overrides LLM_MODEL)")
    parser.add_argument("--max-iterations", type=int, help="Overrides AGENT_MAX_ITERATIONS")
    parser.add_argument("--max-workers", type=int, help="Overrides DISPATCH_MAX_WORKERS")
    parser.add_argument("--tool-timeout", type=float, help="Per-call timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def apply_overrides(config: AgentConfig, args: argparse.Namespace) -> AgentConfig:
    """Apply command-line flags on top of the environment configuration."""
    if args.model:
        config.llm.model_id = args.model
    if args.max_iterations is not None:
        config.loop.max_iterations = args.max_iterations
    if args.max_workers is not None:
        config.dispatch.max_workers = args.max_workers
    if args.tool_timeout is not None:
        config.dispatch = dataclasses.replace(config.dispatch, tool_timeout_seconds=args.tool_timeout)
    return config


def main(argv: list[str] | None = None) -> int:
    """Run one task from the command line and return the exit status."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    root = Path(args.root)
    if not root.is_dir():
        logger.error(f"Workspace root is not a directory: {root}")
        return 2

    try:
        config = apply_overrides(AgentConfig.from_env(), args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    if not config.llm.api_key:
        logger.error("LLM_API_KEY is not set")
        return 2

    with LLMClient(config.llm) as client:
        loop = OrchestrationLoop.create(root, config, client=client)
        result = loop.run(args.task)

    if result.answer:
        print(result.answer)
    if result.status != RunStatus.COMPLETED:
        detail = result.error.message if result.error else f"{result.failed_calls} tool call(s) failed"
        print(f"[{result.status.value}] {detail}", file=sys.stderr)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
