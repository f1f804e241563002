"""Structured logging configuration for structcall.

Events are emitted through structlog and rendered by stdlib handlers:

- the console (stderr, through Rich) shows ``event key=value`` lines at the
  level chosen with ``-v``;
- an optional JSONL file receives every event at DEBUG level, one JSON object
  per line.

While a conversation is being resolved, the runner binds identifiers with
:func:`resolution_context` (``resolution``, ``turn``, ``tool``, ``call_id``).
They are merged into every event logged inside that context, including events
from the tool registry and the completion service, so interleaved concurrent
resolutions can be told apart in the log file.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from structlog.typing import EventDict, Processor, WrappedLogger

_configured = False
_file_handler: logging.FileHandler | None = None

VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")
RESOLUTION_KEYS = ("resolution", "turn", "tool", "call_id")

# Rich already prints time and level in its own columns
_CONSOLE_DROPPED_KEYS = ("timestamp", "level", "logger")

_SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _drop_console_keys(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key in _CONSOLE_DROPPED_KEYS:
        event_dict.pop(key, None)
    return event_dict


def _console_handler(verbosity: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
        level=VERBOSITY_LEVELS.get(verbosity, logging.DEBUG),
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _drop_console_keys,
                structlog.processors.KeyValueRenderer(
                    key_order=["event", *RESOLUTION_KEYS], drop_missing=True
                ),
            ],
        )
    )
    return handler


def _jsonl_handler(log_file: Path) -> logging.FileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(default=str),
            ],
        )
    )
    return handler


def configure_logging(verbosity: int = 0, log_file: Path | None = None) -> None:
    """Configure logging for structcall.

    Calling it again replaces the previous configuration and closes any
    previously opened log file.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_file: Optional path of a JSONL file receiving all events.
    """
    global _configured, _file_handler

    close_file_logging()

    handlers = [_console_handler(verbosity)]
    if log_file is not None:
        _file_handler = _jsonl_handler(log_file)
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_file is not None) else logging.WARNING
    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=False,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring logging on first use.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Bound logger instance.
    """
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def resolution_context(**context: Any) -> Iterator[None]:
    """Bind resolution identifiers to every event logged inside the block.

    ``None`` values are skipped. Bindings are context-local, so tool tasks
    created inside the block inherit them without leaking into siblings.
    """
    bound = {key: value for key, value in context.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def close_file_logging() -> None:
    """Close the JSONL file handler, if any."""
    global _file_handler
    if _file_handler is not None:
        logging.getLogger().removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
