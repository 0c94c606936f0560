"""
Event log for tool execution.

Every call the dispatcher runs leaves a trail of events: received,
validated, started, ended, shaped, returned. Calls in a batch run on
worker threads, so the log is guarded by a lock.
"""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class EventType(Enum):
    """Types of events in the execution log."""
    TOOL_CALL_RECEIVED = "tool_call_received"
    SCHEMA_VALIDATION = "schema_validation"
    TOOL_EXECUTION_START = "tool_execution_start"
    TOOL_EXECUTION_END = "tool_execution_end"
    OUTPUT_TRUNCATION = "output_truncation"
    TOOL_RESULT_RETURNED = "tool_result_returned"
    ERROR = "error"
    LLM_REQUEST = "llm_request"
    LLM_RESPONSE = "llm_response"


@dataclass
class ExecutionEvent:
    """A single event in the execution log."""
    timestamp: datetime
    event_type: EventType
    tool_call_id: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "tool_call_id": self.tool_call_id,
            "data": self.data,
        }


@dataclass
class EventLog:
    """Append-only, thread-safe event log."""
    events: list[ExecutionEvent] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def log_event(
        self,
        event_type: EventType,
        tool_call_id: str = "",
        **data: Any,
    ) -> ExecutionEvent:
        event = ExecutionEvent(
            timestamp=datetime.now(UTC),
            event_type=event_type,
            tool_call_id=tool_call_id,
            data=data,
        )
        with self._lock:
            self.events.append(event)
        return event

    def get_events_for_call(self, tool_call_id: str) -> list[ExecutionEvent]:
        with self._lock:
            return [e for e in self.events if e.tool_call_id == tool_call_id]

    def of_type(self, event_type: EventType) -> list[ExecutionEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()
