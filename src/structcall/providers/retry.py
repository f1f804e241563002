"""Exponential-backoff wrapper for completion services.

The resolution loop never retries on its own: a failed service call ends the
resolution. Hosts that want transient failures absorbed wrap their service in
:class:`RetryingService` before handing it to the runner.

Only connection failures and rate limiting are retried. Every other
:class:`ServiceError` (bad request, schema rejected, malformed output) is
propagated on the first occurrence.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from structcall.observability.logging import get_logger
from structcall.providers.base import ServiceConnectionError, ServiceRateLimitError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from structcall.providers.base import CompletionResponse, CompletionService, Message
    from structcall.schema.response_format import ResponseFormat
    from structcall.tools import ToolDefinition

log = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    The delay before retry ``n`` (1-based) is ``base_delay * factor ** (n - 1)``,
    capped at ``max_delay``. A rate-limit ``retry_after`` hint replaces the
    computed delay when it is longer.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay in seconds before the first retry.
        factor: Multiplier applied per retry.
        max_delay: Upper bound for a single delay.
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    factor: float = 2.0
    max_delay: float = 30.0

    def delay_for(self, retry: int, retry_after: float | None = None) -> float:
        """Seconds to wait before retry number *retry* (1-based)."""
        delay = min(self.base_delay * self.factor ** (retry - 1), self.max_delay)
        if retry_after is not None and retry_after > delay:
            return min(retry_after, self.max_delay)
        return delay


class RetryingService:
    """Completion service wrapper that retries transient failures.

    Args:
        service: Underlying completion service.
        policy: Backoff parameters.
        sleep: Coroutine used to wait; replaceable in tests.
    """

    def __init__(
        self,
        service: CompletionService,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def default_model(self) -> str:
        """Return the default model from wrapped service."""
        return self._service.default_model

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_format: ResponseFormat | None = None,
        tool_choice: str | None = None,
        model: str | None = None,
    ) -> CompletionResponse:
        """Call the wrapped service, retrying connection and rate-limit errors.

        Raises:
            ServiceError: The last error once attempts are exhausted, or the
                first non-retryable one.
        """
        attempt = 1
        while True:
            try:
                return await self._service.complete(
                    messages,
                    tools=tools,
                    response_format=response_format,
                    tool_choice=tool_choice,
                    model=model,
                )
            except (ServiceConnectionError, ServiceRateLimitError) as e:
                if attempt >= self._policy.max_attempts:
                    log.warning("service_retry_exhausted", attempts=attempt, status=e.status)
                    raise

                retry_after = e.retry_after if isinstance(e, ServiceRateLimitError) else None
                delay = self._policy.delay_for(attempt, retry_after)
                log.info(
                    "service_retry",
                    attempt=attempt,
                    max_attempts=self._policy.max_attempts,
                    status=e.status,
                    delay=delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def close(self) -> None:
        """Close underlying service."""
        if hasattr(self._service, "close"):
            await self._service.close()

    async def __aenter__(self) -> RetryingService:
        """Enter async context."""
        return self

    async def __aexit__(self, *_: object) -> None:
        """Exit async context."""
        await self.close()
