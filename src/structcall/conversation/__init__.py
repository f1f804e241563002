"""Conversation management for tool-calling exchanges.

This package provides the ConversationRunner, which resolves a conversation
by alternating service calls and tool execution.
"""

from structcall.conversation.runner import (
    ConversationError,
    ConversationRunner,
    FailureKind,
    LoopState,
    Resolution,
)
from structcall.conversation.state import ConversationState

__all__ = [
    "ConversationError",
    "ConversationRunner",
    "ConversationState",
    "FailureKind",
    "LoopState",
    "Resolution",
]
