"""
Orchestration Loop - Drives the controller until it answers.

The loop is:

1. Send the history and tool schemas to the controller
2. If it returns tool calls: dispatch them as one batch, append the
   ordered results, goto 1
3. If it returns a final answer: stop

The loop has a hard max_iterations limit so a controller that never
converges cannot run forever. It runs on a single thread; concurrency
lives entirely inside the dispatcher.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from fileagent.config import AgentConfig, LoopConfig
from fileagent.dispatcher import ParallelDispatcher
from fileagent.errors import ClientUnavailable, ErrorKind
from fileagent.events import EventLog, EventType
from fileagent.llm import ControllerClient, LLMClient
from fileagent.registry import ToolRegistry
from fileagent.session import Session
from fileagent.todos import TodoList
from fileagent.toolset import FileToolset
from fileagent.types import ErrorInfo, ToolCallResult

logger = logging.getLogger(__name__)

DEFAULT_ANSWER = "Task completed successfully"

SYSTEM_PROMPT = """You are a file-operations agent working inside a local workspace.

You can only act through the tools you are given. Relative paths resolve
against the workspace root.

Guidelines:
- Several tool calls in one turn run concurrently. Calls touching the same
  file run in the order you emit them when one of them writes.
- Search before reading: use grep, glob or find to locate what you need.
- Large outputs are shaped to fit your context. When a result ends with an
  "[... output shaped ...]" line, follow its hint (offset/limit, narrower
  patterns, head_limit) to get the part you need.
- Use edit for a single change and multi_edit for several changes to one
  file. A multi_edit either applies completely or not at all.
- For tasks with several steps, track them with todo_write and keep exactly
  one todo in progress.
- When the task is done, reply with a short summary and no tool calls."""


class RunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    CLIENT_UNAVAILABLE = "client_unavailable"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"


EXIT_CODES = {
    RunStatus.COMPLETED: 0,
    RunStatus.PARTIAL_FAILURE: 1,
    RunStatus.CLIENT_UNAVAILABLE: 2,
    RunStatus.MAX_ITERATIONS_EXCEEDED: 2,
}


@dataclass
class IterationResult:
    """Result of a single controller round trip."""
    iteration: int
    action: str
    content: str | None = None
    tool_calls_made: int = 0
    failed_calls: int = 0
    truncated_outputs: int = 0


@dataclass
class FinalResult:
    """Final result of running the orchestration loop."""
    status: RunStatus
    answer: str | None
    iterations: int
    tool_calls_made: int = 0
    failed_calls: int = 0
    error: ErrorInfo | None = None
    iteration_results: list[IterationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]


class OrchestrationLoop:
    """The controller <-> dispatcher loop for one session."""

    def __init__(
        self,
        session: Session,
        client: ControllerClient,
        registry: ToolRegistry,
        dispatcher: ParallelDispatcher,
        config: LoopConfig | None = None,
    ) -> None:
        self.session = session
        self.client = client
        self.registry = registry
        self.dispatcher = dispatcher
        self.config = config or LoopConfig()

    @property
    def event_log(self) -> EventLog:
        return self.dispatcher.event_log

    def run(self, initial_task: str) -> FinalResult:
        """
        Run the loop for one task.

        Args:
            initial_task: The user's request

        Returns:
            FinalResult describing how the run ended
        """
        self.session.add_user_message(initial_task)
        schemas = self.registry.get_schemas()
        iteration_results: list[IterationResult] = []
        tool_calls_made = 0
        failed_calls = 0

        for iteration in range(1, self.config.max_iterations + 1):
            logger.info(f"Orchestration iteration {iteration}/{self.config.max_iterations}")
            self.event_log.log_event(
                EventType.LLM_REQUEST, messages=len(self.session.messages)
            )
            try:
                reply = self.client.send(
                    self.session.get_message_dicts(), schemas, self.session.system_prompt
                )
            except ClientUnavailable as e:
                logger.error(f"Controller unavailable at iteration {iteration}: {e}")
                return FinalResult(
                    status=RunStatus.CLIENT_UNAVAILABLE,
                    answer=None,
                    iterations=iteration,
                    tool_calls_made=tool_calls_made,
                    failed_calls=failed_calls,
                    error=ErrorInfo(kind=ErrorKind.CLIENT_UNAVAILABLE, message=str(e)),
                    iteration_results=iteration_results,
                )
            self.event_log.log_event(
                EventType.LLM_RESPONSE, tool_calls=len(reply.tool_calls)
            )

            if not reply.has_tool_calls:
                answer = reply.final_answer or DEFAULT_ANSWER
                self.session.add_assistant_message(answer)
                iteration_results.append(IterationResult(
                    iteration=iteration, action="final_answer", content=answer
                ))
                status = RunStatus.PARTIAL_FAILURE if failed_calls else RunStatus.COMPLETED
                logger.info(f"Run finished after {iteration} iteration(s): {status.value}")
                return FinalResult(
                    status=status,
                    answer=answer,
                    iterations=iteration,
                    tool_calls_made=tool_calls_made,
                    failed_calls=failed_calls,
                    iteration_results=iteration_results,
                )

            self.session.add_assistant_message(reply.content, reply.tool_calls)
            results = self.dispatcher.dispatch_batch(reply.tool_calls)
            self.session.add_tool_results(results)

            failed = _count_failed(results)
            tool_calls_made += len(results)
            failed_calls += failed
            iteration_results.append(IterationResult(
                iteration=iteration,
                action="tool_calls",
                content=reply.content or None,
                tool_calls_made=len(results),
                failed_calls=failed,
                truncated_outputs=sum(
                    1 for r in results if r.success and r.outcome.output.truncated
                ),
            ))

        logger.warning(f"Orchestration loop hit max_iterations limit ({self.config.max_iterations})")
        return FinalResult(
            status=RunStatus.MAX_ITERATIONS_EXCEEDED,
            answer=None,
            iterations=self.config.max_iterations,
            tool_calls_made=tool_calls_made,
            failed_calls=failed_calls,
            error=ErrorInfo(
                kind=ErrorKind.MAX_ITERATIONS_EXCEEDED,
                message=f"No final answer after {self.config.max_iterations} iterations",
            ),
            iteration_results=iteration_results,
        )

    @classmethod
    def create(
        cls,
        root: Path,
        config: AgentConfig | None = None,
        client: ControllerClient | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> "OrchestrationLoop":
        """
        Factory method to create a loop with all dependencies.

        This is the recommended way to create an OrchestrationLoop.
        """
        config = config or AgentConfig.from_env()

        session = Session(system_prompt=system_prompt)
        registry = ToolRegistry()
        toolset = FileToolset(root, TodoList(session.sequence), config.limits)
        toolset.register_default_tools(registry)
        dispatcher = ParallelDispatcher(registry, config.limits, config.dispatch)

        return cls(
            session=session,
            client=client or LLMClient(config.llm),
            registry=registry,
            dispatcher=dispatcher,
            config=config.loop,
        )


def _count_failed(results: list[ToolCallResult]) -> int:
    return sum(1 for r in results if not r.success)
