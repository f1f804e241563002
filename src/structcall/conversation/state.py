"""Conversation state tracking.

This module provides the ConversationState dataclass that holds the
transcript of one conversation while it is being resolved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structcall.providers.base import Message
    from structcall.tools import ToolCall


@dataclass
class ConversationState:
    """Transcript and usage counters for one conversation.

    Messages are only ever appended; existing entries are never edited. A
    state is owned by at most one resolution at a time.

    Attributes:
        messages: List of all messages in the conversation.
        turn_count: Number of completed service round-trips.
        llm_calls: Total service calls that returned a response.
        tool_calls_executed: Tool invocations whose result was recorded.
        tokens_used: Total tokens consumed across all calls.

    Example:
        >>> state = ConversationState()
        >>> state.add_message({"role": "system", "content": "Be brief."})
        >>> state.add_message({"role": "user", "content": "Weather in Paris?"})
        >>> len(state.messages)
        2
    """

    messages: list[Message] = field(default_factory=list)
    turn_count: int = 0
    llm_calls: int = 0
    tool_calls_executed: int = 0
    tokens_used: int = 0
    resolving: bool = field(default=False, repr=False, compare=False)

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> ConversationState:
        """Start a conversation from existing messages (copied)."""
        return cls(messages=[{**m} for m in messages])  # type: ignore[misc]

    @classmethod
    def start(cls, user: str, system: str | None = None) -> ConversationState:
        """Start a conversation from a user prompt and optional system prompt."""
        state = cls()
        if system:
            state.add_message({"role": "system", "content": system})
        state.add_message({"role": "user", "content": user})
        return state

    def add_message(self, message: Message) -> None:
        """Add a message to the conversation history."""
        self.messages.append(message)

    def add_assistant_message(
        self, content: str, tool_calls: list[ToolCall] | None = None
    ) -> Message:
        """Add an assistant message, with its tool invocations if any."""
        message: Message = {"role": "assistant", "content": content}
        if tool_calls:
            message["tool_calls"] = [tc.to_wire() for tc in tool_calls]
        self.messages.append(message)
        return message

    def add_tool_result(self, tool_call_id: str, content: str) -> None:
        """Add a tool result message to the conversation."""
        self.messages.append(
            {
                "role": "tool",
                "content": content,
                "tool_call_id": tool_call_id,
            }
        )

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None
