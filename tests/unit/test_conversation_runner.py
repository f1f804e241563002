"""Tests for the tool-call resolution loop."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from structcall.conversation import (
    ConversationError,
    ConversationRunner,
    ConversationState,
    FailureKind,
    LoopState,
)
from structcall.providers import OpenAICompatibleService, ServiceConnectionError, ServiceError
from structcall.schema import ResponseFormat, define_number, define_object, define_string
from structcall.tools import ToolDefinition, ToolErrorKind, ToolRegistry, ToolSpec
from tests.fixtures.services import ScriptedService, final_reply, tool_reply, weather_definition


def _delay_definition() -> ToolDefinition:
    return ToolDefinition(
        name="wait",
        description="Wait, then echo a label.",
        parameters=define_object(
            {"label": define_string(), "seconds": define_number()},
            required=["label", "seconds"],
        ),
    )


async def _wait_handler(args: dict[str, Any]) -> str:
    await asyncio.sleep(args["seconds"])
    return args["label"]


class _BlockingService:
    """Service whose complete() waits on a gate before replying."""

    default_model = "test-model"

    def __init__(self, on_call: asyncio.Event | None = None) -> None:
        self.gate = asyncio.Event()
        self.on_call = on_call

    async def complete(self, messages: list[Any], **kwargs: Any) -> Any:
        if self.on_call is not None:
            self.on_call.set()
        await self.gate.wait()
        return final_reply("done")


# --- Basic resolution ---


@pytest.mark.asyncio
async def test_weather_round_trip(weather_registry: ToolRegistry) -> None:
    service = ScriptedService(
        [
            tool_reply(("c1", "get_weather", {"city": "Paris"}), tokens=30),
            final_reply("It is sunny in Paris.", tokens=20),
        ]
    )
    runner = ConversationRunner(service, weather_registry, max_turns=5)
    state = ConversationState.start("What's the weather in Paris?", system="Be brief.")

    resolution = await runner.resolve(state)

    assert resolution.ok
    assert resolution.status is LoopState.FINAL
    assert resolution.content == "It is sunny in Paris."
    assert resolution.turn == 2
    assert [m["role"] for m in state.messages] == [
        "system",
        "user",
        "assistant",
        "tool",
        "assistant",
    ]
    assert state.messages[2]["tool_calls"][0]["id"] == "c1"
    assert state.messages[3] == {
        "role": "tool",
        "content": "Sunny in Paris",
        "tool_call_id": "c1",
    }
    assert state.llm_calls == 2
    assert state.turn_count == 2
    assert state.tool_calls_executed == 1
    assert state.tokens_used == 50
    assert runner.loop_state is LoopState.FINAL


@pytest.mark.asyncio
async def test_service_sees_transcript_and_tools(weather_registry: ToolRegistry) -> None:
    service = ScriptedService(
        [tool_reply(("c1", "get_weather", {"city": "Oslo"})), final_reply("ok")]
    )
    runner = ConversationRunner(service, weather_registry)

    await runner.resolve(ConversationState.start("hi"), tool_choice="auto")

    assert len(service.calls[0]["messages"]) == 1
    assert len(service.calls[1]["messages"]) == 3
    assert [t.name for t in service.calls[0]["tools"]] == ["get_weather"]
    assert service.calls[0]["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_no_tool_calls_is_final_immediately() -> None:
    service = ScriptedService([final_reply("hello")])
    runner = ConversationRunner(service)

    resolution = await runner.resolve(ConversationState.start("hi"))

    assert resolution.ok
    assert resolution.turn == 1
    assert service.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_response_format_passed_every_turn(weather_registry: ToolRegistry) -> None:
    fmt = ResponseFormat.json_schema("reply", define_object({"text": define_string()}))
    service = ScriptedService(
        [tool_reply(("c1", "get_weather", {"city": "Oslo"})), final_reply('{"text": "ok"}')]
    )
    runner = ConversationRunner(service, weather_registry)

    await runner.resolve(ConversationState.start("hi"), response_format=fmt)

    assert [c["response_format"] for c in service.calls] == [fmt, fmt]


@pytest.mark.asyncio
async def test_runner_freezes_registry(weather_registry: ToolRegistry) -> None:
    ConversationRunner(ScriptedService([]), weather_registry)

    assert weather_registry.frozen


def test_rejects_non_positive_max_turns() -> None:
    with pytest.raises(ValueError, match="max_turns"):
        ConversationRunner(ScriptedService([]), max_turns=0)


# --- Ordering and concurrency ---


@pytest.mark.asyncio
async def test_results_appended_in_request_order() -> None:
    registry = ToolRegistry([ToolSpec(_delay_definition(), handler=_wait_handler)])
    service = ScriptedService(
        [
            tool_reply(
                ("a", "wait", {"label": "first", "seconds": 0.05}),
                ("b", "wait", {"label": "second", "seconds": 0}),
            ),
            final_reply("done"),
        ]
    )
    runner = ConversationRunner(service, registry)
    state = ConversationState.start("go")

    resolution = await runner.resolve(state)

    assert resolution.ok
    tool_messages = [m for m in state.messages if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_messages] == ["a", "b"]
    assert [m["content"] for m in tool_messages] == ["first", "second"]


@pytest.mark.asyncio
async def test_sequential_mode_runs_one_handler_at_a_time() -> None:
    running = 0
    peak = 0

    async def handler(args: dict[str, Any]) -> str:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return args["label"]

    registry = ToolRegistry([ToolSpec(_delay_definition(), handler=handler)])
    calls = [(str(i), "wait", {"label": str(i), "seconds": 0}) for i in range(3)]
    service = ScriptedService([tool_reply(*calls), final_reply("done")])
    runner = ConversationRunner(service, registry, parallel_tool_calls=False)

    resolution = await runner.resolve(ConversationState.start("go"))

    assert resolution.ok
    assert peak == 1


@pytest.mark.asyncio
async def test_parallel_mode_respects_max_concurrency() -> None:
    running = 0
    peak = 0

    async def handler(args: dict[str, Any]) -> str:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return args["label"]

    registry = ToolRegistry([ToolSpec(_delay_definition(), handler=handler)])
    calls = [(str(i), "wait", {"label": str(i), "seconds": 0}) for i in range(5)]
    service = ScriptedService([tool_reply(*calls), final_reply("done")])
    runner = ConversationRunner(service, registry, max_concurrency=2)

    await runner.resolve(ConversationState.start("go"))

    assert peak == 2


# --- Failures ---


@pytest.mark.asyncio
async def test_unknown_tool_keeps_sibling_results(weather_registry: ToolRegistry) -> None:
    service = ScriptedService(
        [
            tool_reply(
                ("c1", "get_weather", {"city": "Oslo"}),
                ("c2", "launch_rockets", {}),
            )
        ]
    )
    runner = ConversationRunner(service, weather_registry)
    state = ConversationState.start("hi")

    resolution = await runner.resolve(state)

    assert not resolution.ok
    assert resolution.failure is FailureKind.UNKNOWN_TOOL
    assert resolution.tool_name == "launch_rockets"
    assert resolution.turn == 1
    assert resolution.error is not None
    assert [m["role"] for m in state.messages] == ["user", "assistant", "tool"]
    assert state.messages[-1]["tool_call_id"] == "c1"
    assert len(service.calls) == 1
    assert runner.loop_state is LoopState.FAILED


@pytest.mark.asyncio
async def test_argument_mismatch(weather_registry: ToolRegistry) -> None:
    service = ScriptedService([tool_reply(("c1", "get_weather", {"town": "Oslo"}))])
    runner = ConversationRunner(service, weather_registry)

    resolution = await runner.resolve(ConversationState.start("hi"))

    assert resolution.failure is FailureKind.ARGUMENT_MISMATCH
    assert resolution.error.kind is ToolErrorKind.ARGUMENT_MISMATCH  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_handler_failure() -> None:
    def handler(args: dict[str, Any]) -> str:
        raise RuntimeError("weather service down")

    registry = ToolRegistry([ToolSpec(weather_definition(), handler=handler)])
    service = ScriptedService([tool_reply(("c1", "get_weather", {"city": "Oslo"}))])
    runner = ConversationRunner(service, registry)

    resolution = await runner.resolve(ConversationState.start("hi"))

    assert resolution.failure is FailureKind.HANDLER_FAILURE
    assert "get_weather" in resolution.describe()


@pytest.mark.asyncio
async def test_first_failure_in_request_order_is_reported() -> None:
    registry = ToolRegistry([ToolSpec(_delay_definition(), handler=_wait_handler)])
    service = ScriptedService(
        [
            tool_reply(
                ("a", "missing_one", {}),
                ("b", "wait", {"label": 1, "seconds": 0}),
            )
        ]
    )
    runner = ConversationRunner(service, registry)

    resolution = await runner.resolve(ConversationState.start("go"))

    assert resolution.failure is FailureKind.UNKNOWN_TOOL
    assert resolution.tool_name == "missing_one"


@pytest.mark.asyncio
async def test_max_turns_exceeded(weather_registry: ToolRegistry) -> None:
    service = ScriptedService(
        [
            tool_reply(("c1", "get_weather", {"city": "Oslo"})),
            tool_reply(("c2", "get_weather", {"city": "Rome"})),
        ]
    )
    runner = ConversationRunner(service, weather_registry, max_turns=2)
    state = ConversationState.start("hi")

    resolution = await runner.resolve(state)

    assert resolution.failure is FailureKind.MAX_TURNS_EXCEEDED
    assert resolution.turn == 2
    assert resolution.error is None
    assert len(service.calls) == 2
    assert state.tool_calls_executed == 2


@pytest.mark.asyncio
async def test_service_error() -> None:
    error = ServiceError("test", "bad gateway", status="502")
    runner = ConversationRunner(ScriptedService([error]))
    state = ConversationState.start("hi")

    resolution = await runner.resolve(state)

    assert resolution.failure is FailureKind.SERVICE_ERROR
    assert resolution.error is error
    assert len(state.messages) == 1
    assert state.llm_calls == 0


@pytest.mark.asyncio
async def test_raise_for_failure() -> None:
    runner = ConversationRunner(ScriptedService([ServiceError("test", "nope")]))

    resolution = await runner.resolve(ConversationState.start("hi"))

    with pytest.raises(ConversationError, match="SERVICE_ERROR") as exc_info:
        resolution.raise_for_failure()
    assert exc_info.value.resolution is resolution


@pytest.mark.asyncio
async def test_raise_for_failure_returns_final() -> None:
    runner = ConversationRunner(ScriptedService([final_reply("ok")]))

    resolution = await runner.resolve(ConversationState.start("hi"))

    assert resolution.raise_for_failure() is resolution
    assert resolution.describe() == "Resolved after 1 turn(s)"


# --- Cancellation ---


@pytest.mark.asyncio
async def test_cancel_before_start() -> None:
    service = ScriptedService([final_reply("never")])
    runner = ConversationRunner(service)
    cancel = asyncio.Event()
    cancel.set()

    resolution = await runner.resolve(ConversationState.start("hi"), cancel_event=cancel)

    assert resolution.failure is FailureKind.CANCELLED
    assert resolution.turn == 0
    assert service.calls == []


@pytest.mark.asyncio
async def test_cancel_during_service_call() -> None:
    cancel = asyncio.Event()
    service = _BlockingService(on_call=cancel)
    runner = ConversationRunner(service)
    state = ConversationState.start("hi")

    resolution = await runner.resolve(state, cancel_event=cancel)

    assert resolution.failure is FailureKind.CANCELLED
    assert resolution.turn == 1
    assert len(state.messages) == 1
    assert state.llm_calls == 0


@pytest.mark.asyncio
async def test_cancel_during_handlers_keeps_finished_results() -> None:
    cancel = asyncio.Event()

    async def slow(args: dict[str, Any]) -> str:
        cancel.set()
        await asyncio.sleep(10)
        return "too late"

    slow_definition = ToolDefinition(
        name="slow", description="Never finishes.", parameters=define_object({})
    )
    registry = ToolRegistry(
        [
            ToolSpec(weather_definition(), handler=lambda args: "Sunny"),
            ToolSpec(slow_definition, handler=slow),
        ]
    )
    service = ScriptedService(
        [tool_reply(("c1", "get_weather", {"city": "Oslo"}), ("c2", "slow", {}))]
    )
    runner = ConversationRunner(service, registry)
    state = ConversationState.start("hi")

    resolution = await runner.resolve(state, cancel_event=cancel)

    assert resolution.failure is FailureKind.CANCELLED
    tool_messages = [m for m in state.messages if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_messages] == ["c1"]
    assert state.tool_calls_executed == 1
    assert len(service.calls) == 1


# --- Ownership ---


@pytest.mark.asyncio
async def test_concurrent_resolve_of_same_state_is_rejected() -> None:
    started = asyncio.Event()
    service = _BlockingService(on_call=started)
    runner = ConversationRunner(service)
    state = ConversationState.start("hi")

    first = asyncio.create_task(runner.resolve(state))
    await started.wait()

    with pytest.raises(ConversationError, match="already being resolved"):
        await ConversationRunner(service).resolve(state)

    service.gate.set()
    resolution = await first
    assert resolution.ok
    assert not state.resolving


@pytest.mark.asyncio
async def test_state_can_be_resolved_again_after_final() -> None:
    service = ScriptedService([final_reply("one"), final_reply("two")])
    runner = ConversationRunner(service)
    state = ConversationState.start("hi")

    await runner.resolve(state)
    state.add_message({"role": "user", "content": "again"})
    resolution = await runner.resolve(state)

    assert resolution.content == "two"
    assert len(state.messages) == 4
    assert state.llm_calls == 2


@pytest.mark.asyncio
async def test_broken_connection_ends_in_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("connection reset", request=request)

    service = OpenAICompatibleService(api_key="test-key", transport=httpx.MockTransport(handler))
    runner = ConversationRunner(service)
    state = ConversationState.start("hi")

    resolution = await runner.resolve(state)

    assert resolution.failure is FailureKind.SERVICE_ERROR
    assert isinstance(resolution.error, ServiceConnectionError)
    assert runner.loop_state is LoopState.FAILED
    assert resolution.state.messages == [{"role": "user", "content": "hi"}]
    await service.close()


@pytest.mark.asyncio
async def test_null_usage_does_not_break_token_count() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "model": "test-model",
                "choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}],
                "usage": {"total_tokens": None},
            },
        )

    service = OpenAICompatibleService(api_key="test-key", transport=httpx.MockTransport(handler))
    state = ConversationState.start("hi")

    resolution = await ConversationRunner(service).resolve(state)

    assert resolution.ok
    assert state.tokens_used == 0
    await service.close()
