"""Tool-call resolution loop.

This module provides the ConversationRunner, which drives a conversation
with a completion service until the model answers without requesting tools,
or until something stops it.

State machine::

    IDLE -> AWAITING_RESPONSE -> HAS_TOOL_CALLS -> AWAITING_RESPONSE -> ...
                              -> FINAL
                              -> FAILED

The service call and tool handlers are the only suspension points. Both can
be interrupted through a cancellation event.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from dataclasses import dataclass
from enum import Enum, StrEnum, auto
from typing import TYPE_CHECKING, Any

import structlog

from structcall.conversation.state import ConversationState
from structcall.observability.logging import get_logger, resolution_context
from structcall.providers.base import ServiceError
from structcall.tools import ToolError, ToolErrorKind, ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from structcall.providers.base import CompletionResponse, CompletionService, Message
    from structcall.schema.response_format import ResponseFormat
    from structcall.tools import ToolCall

log = get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


class LoopState(StrEnum):
    """Position of the resolution loop in its state machine."""

    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    HAS_TOOL_CALLS = "has_tool_calls"
    FINAL = "final"
    FAILED = "failed"


class FailureKind(Enum):
    """Why a resolution ended in FAILED."""

    SERVICE_ERROR = auto()
    UNKNOWN_TOOL = auto()
    ARGUMENT_MISMATCH = auto()
    HANDLER_FAILURE = auto()
    MAX_TURNS_EXCEEDED = auto()
    CANCELLED = auto()


_TOOL_FAILURES = {
    ToolErrorKind.UNKNOWN_TOOL: FailureKind.UNKNOWN_TOOL,
    ToolErrorKind.ARGUMENT_MISMATCH: FailureKind.ARGUMENT_MISMATCH,
    ToolErrorKind.HANDLER_FAILURE: FailureKind.HANDLER_FAILURE,
}


class ConversationError(Exception):
    """Raised when a conversation cannot be resolved.

    Attributes:
        message: Error description.
        state: Conversation state at time of failure.
        resolution: The failed resolution, when there is one.
    """

    def __init__(
        self,
        message: str,
        state: ConversationState | None = None,
        resolution: Resolution | None = None,
    ) -> None:
        self.state = state
        self.resolution = resolution
        super().__init__(message)


class _Cancelled(Exception):
    """Internal signal: the cancellation event fired at a suspension point."""


@dataclass
class Resolution:
    """Outcome of one resolution pass.

    Attributes:
        status: FINAL or FAILED.
        state: The conversation, including everything appended during the pass.
        message: The final assistant message (FINAL only).
        error: The originating error (FAILED only, absent for MAX_TURNS_EXCEEDED
            and CANCELLED).
        failure: Failure category (FAILED only).
        turn: Turn (1-based service call) during which the pass ended.
        tool_name: Tool involved in the failure, if any.
    """

    status: LoopState
    state: ConversationState
    message: Message | None = None
    error: Exception | None = None
    failure: FailureKind | None = None
    turn: int = 0
    tool_name: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is LoopState.FINAL

    @property
    def content(self) -> str | None:
        """Text of the final assistant message."""
        return self.message["content"] if self.message is not None else None

    def describe(self) -> str:
        """One-line human-readable summary."""
        if self.ok:
            return f"Resolved after {self.turn} turn(s)"
        parts = [f"Failed ({self.failure.name if self.failure else 'unknown'})"]
        parts.append(f"at turn {self.turn}")
        if self.tool_name:
            parts.append(f"in tool '{self.tool_name}'")
        text = " ".join(parts)
        if self.error is not None:
            text += f": {self.error}"
        return text

    def raise_for_failure(self) -> Resolution:
        """Return self when FINAL, raise ConversationError otherwise."""
        if not self.ok:
            raise ConversationError(self.describe(), self.state, self)
        return self


class ConversationRunner:
    """Drives a conversation to a final answer, executing tool calls on the way.

    Each turn submits the transcript to the service. When the reply requests
    tools, every invocation is executed at most once, results are appended in
    the order the invocations were requested, and the transcript is submitted
    again. A reply without tool calls ends the pass.

    Example:
        >>> runner = ConversationRunner(service, registry, max_turns=10)
        >>> state = ConversationState.start("What's the weather in Paris?")
        >>> resolution = await runner.resolve(state)
        >>> resolution.content
        'It is sunny in Paris.'
    """

    def __init__(
        self,
        service: CompletionService,
        registry: ToolRegistry | None = None,
        max_turns: int | None = None,
        parallel_tool_calls: bool = True,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        model: str | None = None,
    ) -> None:
        """Initialize the runner.

        The registry is frozen here; tools cannot be added once a runner uses it.

        Args:
            service: Completion service to submit conversations to.
            registry: Tools offered to the model. None means no tools.
            max_turns: Maximum service calls per pass. None means unbounded.
            parallel_tool_calls: Run the invocations of one turn concurrently.
            max_concurrency: Upper bound on concurrently running handlers.
            model: Model override passed to every service call.

        Raises:
            ValueError: If max_turns is not positive.
        """
        if max_turns is not None and max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")

        self._service = service
        self._registry = registry if registry is not None else ToolRegistry()
        self._registry.freeze()
        self._max_turns = max_turns
        self._parallel = parallel_tool_calls
        self._max_concurrency = max(1, max_concurrency)
        self._model = model
        self._loop_state = LoopState.IDLE

    @property
    def loop_state(self) -> LoopState:
        """State of the most recent (or current) pass."""
        return self._loop_state

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def _transition(self, new_state: LoopState, **context: Any) -> None:
        log.debug("loop_transition", old=str(self._loop_state), new=str(new_state), **context)
        self._loop_state = new_state

    async def resolve(
        self,
        state: ConversationState,
        response_format: ResponseFormat | None = None,
        tool_choice: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Resolution:
        """Run the loop until a final answer or a failure.

        Failures are returned, not raised; use
        :meth:`Resolution.raise_for_failure` to get an exception instead.

        Args:
            state: Conversation to resolve; appended to in place.
            response_format: Requested output format for every turn.
            tool_choice: Tool selection mode for every turn.
            cancel_event: Setting this event interrupts the pass.

        Returns:
            Resolution with status FINAL or FAILED.

        Raises:
            ConversationError: If *state* is already being resolved.
        """
        if state.resolving:
            raise ConversationError("Conversation is already being resolved", state)

        state.resolving = True
        try:
            with resolution_context(resolution=uuid.uuid4().hex[:8], turn=0):
                self._transition(LoopState.IDLE)
                log.info(
                    "resolution_start",
                    messages=len(state.messages),
                    tools=len(self._registry),
                    max_turns=self._max_turns,
                )
                return await self._run(state, response_format, tool_choice, cancel_event)
        finally:
            state.resolving = False

    async def _run(
        self,
        state: ConversationState,
        response_format: ResponseFormat | None,
        tool_choice: str | None,
        cancel_event: asyncio.Event | None,
    ) -> Resolution:
        tools = self._registry.definitions() or None
        turn = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return self._fail(state, FailureKind.CANCELLED, turn)
            if self._max_turns is not None and turn >= self._max_turns:
                return self._fail(state, FailureKind.MAX_TURNS_EXCEEDED, turn)

            turn += 1
            structlog.contextvars.bind_contextvars(turn=turn)
            self._transition(LoopState.AWAITING_RESPONSE)
            try:
                response: CompletionResponse = await self._until_cancelled(
                    self._service.complete(
                        list(state.messages),
                        tools=tools,
                        response_format=response_format,
                        tool_choice=tool_choice,
                        model=self._model,
                    ),
                    cancel_event,
                )
            except _Cancelled:
                return self._fail(state, FailureKind.CANCELLED, turn)
            except ServiceError as e:
                return self._fail(state, FailureKind.SERVICE_ERROR, turn, error=e)

            state.llm_calls += 1
            state.turn_count += 1
            state.tokens_used += response.tokens_used

            if not response.has_tool_calls:
                message = state.add_assistant_message(response.content)
                self._transition(LoopState.FINAL)
                log.info(
                    "resolution_complete",
                    turns=turn,
                    tokens=state.tokens_used,
                    tool_calls=state.tool_calls_executed,
                )
                return Resolution(LoopState.FINAL, state, message=message, turn=turn)

            calls = response.tool_calls or []
            self._transition(LoopState.HAS_TOOL_CALLS, calls=len(calls))
            state.add_assistant_message(response.content, calls)

            outcomes, cancelled = await self._dispatch(calls, cancel_event)

            # Results go in request order regardless of completion order
            for call, outcome in zip(calls, outcomes, strict=True):
                if isinstance(outcome, str):
                    state.add_tool_result(call.id, outcome)
                    state.tool_calls_executed += 1

            if cancelled:
                return self._fail(state, FailureKind.CANCELLED, turn)

            for outcome in outcomes:
                if isinstance(outcome, ToolError):
                    return self._fail(
                        state,
                        _TOOL_FAILURES[outcome.kind],
                        turn,
                        error=outcome,
                        tool_name=outcome.tool_name,
                    )

    async def _dispatch(
        self,
        calls: list[ToolCall],
        cancel_event: asyncio.Event | None,
    ) -> tuple[list[str | ToolError | None], bool]:
        """Execute one turn's invocations.

        Returns:
            Tuple of (outcomes in request order, cancelled). An outcome is the
            result string, the ToolError, or None if the handler never finished.
        """
        outcomes: list[str | ToolError | None] = [None] * len(calls)
        semaphore = asyncio.Semaphore(self._max_concurrency if self._parallel else 1)

        async def _run_one(idx: int, call: ToolCall) -> None:
            async with semaphore:
                with resolution_context(tool=call.name, call_id=call.id):
                    try:
                        outcomes[idx] = await self._registry.execute(call)
                    except ToolError as e:
                        log.warning("tool_call_failed", kind=e.kind.name)
                        outcomes[idx] = e

        tasks = [asyncio.create_task(_run_one(i, call)) for i, call in enumerate(calls)]
        try:
            await self._until_cancelled(asyncio.gather(*tasks), cancel_event)
        except _Cancelled:
            log.info(
                "tool_calls_cancelled",
                completed=sum(outcome is not None for outcome in outcomes),
                total=len(calls),
            )
            return outcomes, True
        return outcomes, False

    async def _until_cancelled(
        self, awaitable: Awaitable[Any], cancel_event: asyncio.Event | None
    ) -> Any:
        """Await *awaitable*, abandoning it if *cancel_event* fires first.

        Raises:
            _Cancelled: If the event fired before the awaitable finished.
        """
        work = asyncio.ensure_future(awaitable)
        if cancel_event is None:
            return await work

        waiter = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise _Cancelled

    def _fail(
        self,
        state: ConversationState,
        failure: FailureKind,
        turn: int,
        error: Exception | None = None,
        tool_name: str | None = None,
    ) -> Resolution:
        self._transition(LoopState.FAILED, turn=turn, failure=failure.name)
        log.warning(
            "resolution_failed",
            failure=failure.name,
            turn=turn,
            tool=tool_name,
            error=str(error) if error is not None else None,
        )
        return Resolution(
            LoopState.FAILED,
            state,
            error=error,
            failure=failure,
            turn=turn,
            tool_name=tool_name,
        )
