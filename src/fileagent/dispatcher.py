"""
Parallel Dispatcher - Concurrent execution of a batch of tool calls.

This module provides:
1. ConflictModel - Resource keys and ordering constraints within a batch
2. ParallelDispatcher - ThreadPoolExecutor-based batch execution

Key design decisions:
- Two calls conflict iff they share a resource key and at least one of
  them writes. Conflicting calls run in request order; everything else
  runs concurrently.
- Shell calls share the global "shell" key and are write-class, so they
  serialize against each other.
- A failing call never aborts its siblings. Every exception is turned
  into a Failure here and nowhere else.
- Results come back in request order, whatever order calls finish in.
- The combined text of a batch stays under batch_output_limit: the
  largest results are cut first, small ones are left whole.
- Timeouts abandon the call, they do not kill it. Calls ordered after a
  timed-out call that is still running are failed instead of started.
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace

from fileagent.config import DispatchConfig, ShapingLimits
from fileagent.errors import ErrorKind, ToolError
from fileagent.events import EventLog, EventType
from fileagent.registry import Tool, ToolRegistry
from fileagent.shaping import batch_allowances, bound_error, cap, shape
from fileagent.types import ErrorInfo, Failure, OutputKind, Success, ToolCallRequest, ToolCallResult

logger = logging.getLogger(__name__)

# Upper bound on how long the scheduler sleeps while a submitted call has
# not yet been picked up by a worker.
POLL_INTERVAL_SECONDS = 0.05


@dataclass
class PlannedCall:
    """A request after lookup, validation and conflict analysis."""
    index: int
    request: ToolCallRequest
    tool: Tool | None = None
    resource_key: str | None = None
    is_write: bool = False
    error: ErrorInfo | None = None
    depends_on: list[int] = field(default_factory=list)


def error_info_from(exc: BaseException, tool_name: str, resource_key: str | None) -> ErrorInfo:
    """Classify an exception raised while running a tool."""
    if isinstance(exc, ToolError):
        return ErrorInfo(
            kind=exc.kind,
            message=exc.message,
            tool_name=exc.tool_name or tool_name,
            resource_key=exc.resource_key or resource_key,
            step=exc.step,
        )
    if isinstance(exc, OSError):
        return ErrorInfo(
            kind=ErrorKind.IO_FAILURE,
            message=str(exc),
            tool_name=tool_name,
            resource_key=resource_key,
            step="execute",
        )
    return ErrorInfo(
        kind=ErrorKind.TOOL_FAILED,
        message=f"{type(exc).__name__}: {exc}",
        tool_name=tool_name,
        resource_key=resource_key,
        step="execute",
    )


class ConflictModel:
    """
    Determines which calls in a batch may run concurrently.

    Each tool declares its access class and how to extract its resource
    key from the arguments. A call depends on every earlier call in the
    batch that it conflicts with.
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def plan(self, requests: list[ToolCallRequest]) -> list[PlannedCall]:
        planned: list[PlannedCall] = []
        for index, request in enumerate(requests):
            call = PlannedCall(index=index, request=request)
            try:
                call.tool = self.registry.resolve(request.tool_name, request.arguments)
                call.resource_key = call.tool.key_for(request.arguments)
                call.is_write = call.tool.is_write
            except Exception as e:
                call.error = error_info_from(e, request.tool_name, None)
            planned.append(call)

        for call in planned:
            if call.error is not None or call.resource_key is None:
                continue
            for earlier in planned[:call.index]:
                if earlier.error is not None or earlier.resource_key != call.resource_key:
                    continue
                if call.is_write or earlier.is_write:
                    call.depends_on.append(earlier.index)
        return planned


class ParallelDispatcher:
    """
    Executes a batch of tool calls on a bounded worker pool.

    Holds no state across batches apart from its configuration and the
    event log it writes to.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        limits: ShapingLimits | None = None,
        config: DispatchConfig | None = None,
        event_log: EventLog | None = None,
    ):
        self.registry = registry
        self.limits = limits or ShapingLimits()
        self.config = config or DispatchConfig()
        self.event_log = event_log or EventLog()
        self.conflict_model = ConflictModel(registry)

    def dispatch_batch(self, requests: list[ToolCallRequest]) -> list[ToolCallResult]:
        """
        Execute tool calls concurrently where they do not conflict.

        Returns:
            One ToolCallResult per request, in the same order as requests
        """
        if not requests:
            return []

        duplicates = [i for i, n in Counter(r.id for r in requests).items() if n > 1]
        if duplicates:
            logger.warning(f"Duplicate tool call ids in batch: {', '.join(duplicates)}")

        for request in requests:
            self.event_log.log_event(
                EventType.TOOL_CALL_RECEIVED, request.id, tool_name=request.tool_name
            )

        planned = self.conflict_model.plan(requests)
        results: list[ToolCallResult | None] = [None] * len(planned)
        pending: set[int] = set()
        for call in planned:
            self.event_log.log_event(
                EventType.SCHEMA_VALIDATION, call.request.id, valid=call.error is None
            )
            if call.error is not None:
                results[call.index] = self._failure(call, call.error)
            else:
                pending.add(call.index)

        self._run(planned, pending, results)

        final: list[ToolCallResult] = []
        for call, result in zip(planned, results):
            if result is None:
                raise RuntimeError(f"No result recorded for call {call.request.id}")
            final.append(result)
        final = self._fit_batch(planned, final)
        for result in final:
            self.event_log.log_event(
                EventType.TOOL_RESULT_RETURNED, result.id, success=result.success
            )
        return final

    def _fit_batch(self, planned: list[PlannedCall], results: list[ToolCallResult]) -> list[ToolCallResult]:
        """Cut the largest results down until the batch fits batch_output_limit."""
        sizes = [len(r.content) for r in results]
        if sum(sizes) <= self.limits.batch_output_limit:
            return results

        allowances = batch_allowances(sizes, self.limits.batch_output_limit)
        fitted: list[ToolCallResult] = []
        for call, result, size, allowance in zip(planned, results, sizes, allowances):
            if size <= allowance:
                fitted.append(result)
                continue
            if isinstance(result.outcome, Success):
                kind = call.tool.kind_for(call.request.arguments) if call.tool else OutputKind.TEXT
                outcome: Success | Failure = Success(cap(result.outcome.output, allowance, kind))
            else:
                outcome = Failure(bound_error(result.outcome.error, self.limits, allowance))
            self.event_log.log_event(
                EventType.OUTPUT_TRUNCATION,
                result.id,
                original_size=size,
                shaped_size=allowance,
                strategy="batch",
            )
            fitted.append(replace(result, outcome=outcome))
        logger.info(
            f"Batch output of {sum(sizes)} chars cut to fit {self.limits.batch_output_limit}"
        )
        return fitted

    def _run(
        self,
        planned: list[PlannedCall],
        pending: set[int],
        results: list[ToolCallResult | None],
    ) -> None:
        """Schedule pending calls, honouring dependencies and timeouts."""
        if not pending:
            return

        tool_timeout = self.config.tool_timeout_seconds
        batch_timeout = self.config.batch_timeout_seconds
        batch_deadline = time.monotonic() + batch_timeout if batch_timeout is not None else None

        started_at: dict[int, float] = {}
        running: dict[Future, int] = {}
        abandoned: dict[int, Future] = {}

        executor = ThreadPoolExecutor(
            max_workers=max(1, min(self.config.max_workers, len(pending))),
            thread_name_prefix="tool",
        )
        try:
            while pending or running:
                for index in sorted(pending):
                    call = planned[index]
                    blocker = next(
                        (d for d in call.depends_on if d in abandoned and not abandoned[d].done()),
                        None,
                    )
                    if blocker is not None:
                        pending.discard(index)
                        results[index] = self._failure(call, ErrorInfo(
                            kind=ErrorKind.TIMEOUT,
                            message=(
                                f"Not started: blocked by call {planned[blocker].request.id} "
                                f"which timed out and is still running"
                            ),
                            tool_name=call.request.tool_name,
                            resource_key=call.resource_key,
                            step="schedule",
                        ))
                    elif all(results[d] is not None for d in call.depends_on):
                        pending.discard(index)
                        future = executor.submit(self._execute, call, started_at)
                        running[future] = index

                if not running:
                    continue

                done, _ = wait(
                    running,
                    timeout=self._next_wakeup(running, started_at, tool_timeout, batch_deadline),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    index = running.pop(future)
                    results[index] = self._collect(future, planned[index])

                now = time.monotonic()
                batch_expired = batch_deadline is not None and now >= batch_deadline
                for future, index in list(running.items()):
                    start = started_at.get(index)
                    call_expired = (
                        tool_timeout is not None and start is not None and now - start >= tool_timeout
                    )
                    if not (call_expired or batch_expired):
                        continue
                    del running[future]
                    if not future.cancel():
                        abandoned[index] = future
                    limit = "batch" if batch_expired and not call_expired else "call"
                    seconds = batch_timeout if limit == "batch" else tool_timeout
                    results[index] = self._timeout(planned[index], limit, seconds)

                if batch_expired:
                    for index in sorted(pending):
                        results[index] = self._timeout(planned[index], "batch", batch_timeout)
                    pending.clear()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _next_wakeup(
        self,
        running: dict[Future, int],
        started_at: dict[int, float],
        tool_timeout: float | None,
        batch_deadline: float | None,
    ) -> float | None:
        now = time.monotonic()
        deadlines = []
        if batch_deadline is not None:
            deadlines.append(batch_deadline)
        if tool_timeout is not None:
            for index in running.values():
                start = started_at.get(index)
                if start is None:
                    deadlines.append(now + POLL_INTERVAL_SECONDS)
                else:
                    deadlines.append(start + tool_timeout)
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - now)

    def _execute(self, call: PlannedCall, started_at: dict[int, float]) -> ToolCallResult:
        """Run one call on a worker thread. Never raises."""
        started_at[call.index] = time.monotonic()
        request = call.request
        tool = call.tool
        if tool is None:
            return self._failure(call, ErrorInfo(
                kind=ErrorKind.TOOL_NOT_FOUND,
                message=f"Tool not found: {request.tool_name}",
                tool_name=request.tool_name,
                step="lookup",
            ))

        self.event_log.log_event(
            EventType.TOOL_EXECUTION_START,
            request.id,
            tool_name=request.tool_name,
            resource_key=call.resource_key,
            thread=threading.current_thread().name,
        )
        logger.info(f"Executing tool: {request.tool_name} ({request.id})")
        try:
            raw = str(tool.handler(**request.arguments))
        except Exception as e:
            error = error_info_from(e, request.tool_name, call.resource_key)
            self.event_log.log_event(
                EventType.TOOL_EXECUTION_END, request.id, success=False, error_kind=error.kind.value
            )
            return self._failure(call, error)

        self.event_log.log_event(
            EventType.TOOL_EXECUTION_END, request.id, success=True, output_size=len(raw)
        )
        shaped = shape(raw, tool.kind_for(request.arguments), self.limits)
        if shaped.truncated:
            self.event_log.log_event(
                EventType.OUTPUT_TRUNCATION,
                request.id,
                original_size=shaped.original_size,
                shaped_size=len(shaped.text),
                strategy=shaped.sampling_strategy.value,
            )
            logger.info(
                f"Shaped output of {request.tool_name} ({request.id}): "
                f"{shaped.original_size} -> {len(shaped.text)} chars"
            )
        return ToolCallResult(
            id=request.id,
            tool_name=request.tool_name,
            outcome=Success(shaped),
            resource_key=call.resource_key,
        )

    def _collect(self, future: Future, call: PlannedCall) -> ToolCallResult:
        try:
            return future.result()
        except Exception as e:
            return self._failure(call, error_info_from(e, call.request.tool_name, call.resource_key))

    def _timeout(self, call: PlannedCall, limit: str, seconds: float | None) -> ToolCallResult:
        return self._failure(call, ErrorInfo(
            kind=ErrorKind.TIMEOUT,
            message=(
                f"Exceeded the {limit} timeout of {seconds:g}s. "
                "Side effects that already happened are kept."
            ),
            tool_name=call.request.tool_name,
            resource_key=call.resource_key,
            step="execute",
        ))

    def _failure(self, call: PlannedCall, error: ErrorInfo) -> ToolCallResult:
        error = bound_error(error, self.limits)
        self.event_log.log_event(
            EventType.ERROR,
            call.request.id,
            kind=error.kind.value,
            message=error.message,
            step=error.step,
        )
        logger.warning(f"Tool {call.request.tool_name} ({call.request.id}) failed: {error.render()}")
        return ToolCallResult(
            id=call.request.id,
            tool_name=call.request.tool_name,
            outcome=Failure(error),
            resource_key=call.resource_key,
        )
