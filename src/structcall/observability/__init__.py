"""Observability module for structcall.

Provides structured logging, resolution context binding and completion-call
tracking.
"""

from structcall.observability.completion_logger import CompletionLogEntry, CompletionLogger
from structcall.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
    resolution_context,
)

__all__ = [
    "CompletionLogEntry",
    "CompletionLogger",
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "resolution_context",
]
