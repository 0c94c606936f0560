"""
fileagent - Context-bounded tool orchestration for a file-operations agent.

A controller (a language model) works on a local workspace only through a
fixed set of tools. Tool calls in a batch run concurrently, every result is
shaped to fit the context window, and multi-step edits are applied as a
single transaction.
"""

from fileagent.config import AgentConfig, DispatchConfig, LLMConfig, LoopConfig, ShapingLimits
from fileagent.dispatcher import ParallelDispatcher
from fileagent.edits import EditTransaction, TransactionState
from fileagent.errors import ErrorKind
from fileagent.loop import FinalResult, OrchestrationLoop, RunStatus
from fileagent.registry import Tool, ToolAccess, ToolRegistry
from fileagent.shaping import shape
from fileagent.types import EditOperation, MatchOccurrence, OutputKind, ShapedOutput, ToolCallRequest

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "DispatchConfig",
    "EditOperation",
    "EditTransaction",
    "ErrorKind",
    "FinalResult",
    "LLMConfig",
    "LoopConfig",
    "MatchOccurrence",
    "OrchestrationLoop",
    "OutputKind",
    "ParallelDispatcher",
    "RunStatus",
    "ShapedOutput",
    "ShapingLimits",
    "Tool",
    "ToolAccess",
    "ToolCallRequest",
    "ToolRegistry",
    "TransactionState",
    "shape",
]
