"""Completion services: the protocol, an OpenAI-compatible adapter and wrappers."""

from structcall.providers.base import (
    CompletionResponse,
    CompletionService,
    Message,
    ServiceConnectionError,
    ServiceError,
    ServiceRateLimitError,
    ServiceResponseError,
)
from structcall.providers.logging_wrapper import LoggingService
from structcall.providers.openai_compat import OpenAICompatibleService
from structcall.providers.retry import RetryingService, RetryPolicy

__all__ = [
    "CompletionResponse",
    "CompletionService",
    "LoggingService",
    "Message",
    "OpenAICompatibleService",
    "RetryPolicy",
    "RetryingService",
    "ServiceConnectionError",
    "ServiceError",
    "ServiceRateLimitError",
    "ServiceResponseError",
]
