"""
Session - Conversation state for one run.

The orchestration loop owns exactly one session. It holds the history
sent to the controller and the id sequence handed to anything in the run
that needs ids (the todo list). Nothing is persisted: when the run ends,
the session is discarded.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fileagent.types import Message, Role, Sequence, ToolCallRequest, ToolCallResult


@dataclass
class Session:
    """
    A single orchestration session.

    Messages alternate user/assistant in the Messages API format. The
    system prompt is kept apart from the history and sent alongside it.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    system_prompt: str = ""
    messages: list[Message] = field(default_factory=list)
    sequence: Sequence = field(default_factory=Sequence)
    _closed: bool = field(default=False, repr=False)

    def add_user_message(self, content: str) -> Message:
        """Add a user message to the conversation."""
        self._check_not_closed()
        message = Message(role=Role.USER, content=content)
        self.messages.append(message)
        return message

    def add_assistant_message(
        self,
        content: str,
        tool_calls: list[ToolCallRequest] | None = None,
    ) -> Message:
        """Add an assistant turn, with its tool_use blocks if it requested tools."""
        self._check_not_closed()
        if not tool_calls:
            message = Message(role=Role.ASSISTANT, content=content)
        else:
            blocks: list[dict[str, Any]] = []
            if content:
                blocks.append({"type": "text", "text": content})
            for call in tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.tool_name,
                    "input": call.arguments,
                })
            message = Message(role=Role.ASSISTANT, content=blocks)
        self.messages.append(message)
        return message

    def add_tool_results(self, results: list[ToolCallResult]) -> Message:
        """Add all results of a batch as one user turn of tool_result blocks."""
        self._check_not_closed()
        blocks: list[dict[str, Any]] = []
        for result in results:
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": result.id,
                "content": result.content,
            }
            if not result.success:
                block["is_error"] = True
            blocks.append(block)
        message = Message(role=Role.USER, content=blocks)
        self.messages.append(message)
        return message

    def get_message_dicts(self) -> list[dict[str, Any]]:
        """Get all messages as dicts (for API calls)."""
        return [m.to_dict() for m in self.messages]

    def close(self) -> None:
        """Close the session and discard its history."""
        self._closed = True
        self.messages.clear()

    def _check_not_closed(self) -> None:
        if self._closed:
            raise RuntimeError(f"Session {self.id} is closed.")

    @property
    def is_closed(self) -> bool:
        return self._closed
