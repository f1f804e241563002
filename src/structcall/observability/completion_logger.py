"""JSONL logger for completion-service calls.

Each call made through :class:`~structcall.providers.logging_wrapper.LoggingService`
is written as one JSON object per line. Content is never truncated.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class CompletionLogEntry:
    """Entry for a single completion call."""

    timestamp: str
    model: str

    # Request
    messages: list[dict[str, Any]]
    tools: list[str]
    response_format: str | None

    # Response
    content: str
    tokens_used: int
    finish_reason: str
    duration_seconds: float

    error: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CompletionLogger:
    """Append-only JSONL log of completion calls.

    Attributes:
        log_path: Path to the JSONL log file.
        enabled: Whether logging is enabled.
    """

    def __init__(self, log_path: Path, enabled: bool = True) -> None:
        self.enabled = enabled
        self.log_path = log_path
        if enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: CompletionLogEntry) -> None:
        """Append an entry to the log."""
        if not self.enabled:
            return

        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(entry), default=str) + "\n")

    @staticmethod
    def create_entry(
        model: str,
        messages: list[dict[str, Any]],
        content: str,
        tokens_used: int,
        finish_reason: str,
        duration_seconds: float,
        tools: list[str] | None = None,
        response_format: str | None = None,
        error: str | None = None,
        tool_calls: list[dict[str, Any]] | None = None,
        **metadata: Any,
    ) -> CompletionLogEntry:
        """Create a log entry stamped with the current UTC time."""
        return CompletionLogEntry(
            timestamp=datetime.now(UTC).isoformat(),
            model=model,
            messages=messages,
            tools=tools or [],
            response_format=response_format,
            content=content,
            tokens_used=tokens_used,
            finish_reason=finish_reason,
            duration_seconds=duration_seconds,
            error=error,
            tool_calls=tool_calls,
            metadata=metadata,
        )

    def read_entries(self) -> list[CompletionLogEntry]:
        """Read all entries back from the log file."""
        if not self.log_path.exists():
            return []

        entries: list[CompletionLogEntry] = []
        with self.log_path.open(encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    entries.append(CompletionLogEntry(**json.loads(line)))
        return entries
