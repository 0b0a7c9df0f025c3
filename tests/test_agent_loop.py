"""Tests for the agent loop."""

import asyncio
import pytest
from unittest.mock import AsyncMock

from aikit.adapters.tool_owner_client import ToolOwnerClient
from aikit.models.events import MessageComplete
from aikit.models.message import Role, ToolCall
from aikit.models.permission import PermissionDecision, ToolContext
from aikit.services.agent_loop import AgentLoop, LoopState
from aikit.services.permission_engine import PermissionEngine
from aikit.services.tool_execution_engine import ToolExecutionEngine
from aikit.services.tool_registry import ToolRegistry

from fakes import ScriptedAdapter, error_turn, text_result, text_turn, tool_turn


def build_loop(store, turns, request_permission=None):
    registry = ToolRegistry()
    owner_client = ToolOwnerClient(timeout=5)
    permissions = PermissionEngine(store, domain_aware_prefixes=["nav."])
    adapter = ScriptedAdapter(turns)
    loop = AgentLoop(
        adapter=adapter,
        registry=registry,
        tool_engine=ToolExecutionEngine(registry, permissions, owner_client),
        system_prompt="test system prompt",
        request_permission=request_permission,
    )
    return loop, adapter, owner_client


class TestAgentLoop:
    """Test turn sequencing and history."""

    @pytest.mark.asyncio
    async def test_plain_answer(self, store):
        loop, adapter, _ = build_loop(store, [text_turn("Hello!")])
        events = []

        error = await loop.execute_prompt("hi", events.append)

        assert error is None
        assert [e.type for e in events] == ["message_start", "message_update", "message_complete"]
        assert [(m.role, m.content) for m in loop.history] == [(Role.USER, "hi"), (Role.ASSISTANT, "Hello!")]
        assert adapter.calls[0].system_prompt == "test system prompt"
        assert loop.state == LoopState.DONE

    @pytest.mark.asyncio
    async def test_unknown_tool_then_answer(self, store):
        loop, adapter, _ = build_loop(store, [
            tool_turn(ToolCall(id="call_1", name="fs.list")),
            text_turn("I cannot list files."),
        ])
        events = []

        await loop.execute_prompt("list files", events.append)

        assert len(adapter.calls) == 2
        assert adapter.calls[0].tools == []
        history = loop.history
        assert history[0].content == "list files"
        assert history[1].role == Role.ASSISTANT and history[1].tool_calls[0].name == "fs.list"
        assert history[2].role == Role.TOOL
        assert history[2].tool_call_id == "call_1"
        assert history[2].content == "Unknown tool: fs.list"
        assert history[3].content == "I cannot list files."
        assert len(history) == 4

        tool_results = [e for e in events if e.type == "tool_result"]
        assert len(tool_results) == 1
        assert tool_results[0].result.error == "Unknown tool: fs.list"

        # second turn sees the tool result
        assert [m.role for m in adapter.calls[1].messages] == [Role.USER, Role.ASSISTANT, Role.TOOL]

    @pytest.mark.asyncio
    async def test_allowed_domain_aware_tool_skips_prompt(self, store, nav_click):
        prompter = AsyncMock(return_value=True)
        loop, _, owner_client = build_loop(store, [
            tool_turn(ToolCall(id="call_1", name="nav.click", input={"selector": "#a"})),
            text_turn("Clicked."),
        ], request_permission=prompter)
        await loop.registry.register_owner("ext-nav", [nav_click])
        await loop.tool_engine.permission_engine.store_permission("nav.click", PermissionDecision.ALWAYS_ALLOW)
        owner_client.register_local_owner("ext-nav", AsyncMock(return_value=text_result("clicked #a")))

        await loop.execute_prompt("click", lambda e: None, context=ToolContext(url="https://example.com/"))

        prompter.assert_not_awaited()
        assert loop.history[2].content == "clicked #a"

    @pytest.mark.asyncio
    async def test_tool_calls_run_in_model_order(self, store, nav_click, clock_now):
        loop, _, owner_client = build_loop(store, [
            tool_turn(ToolCall(id="call_1", name="nav.click"), ToolCall(id="call_2", name="clock.now")),
            text_turn("Done."),
        ])
        await loop.registry.register_owner("ext-nav", [nav_click])
        await loop.registry.register_owner("ext-clock", [clock_now])
        await loop.tool_engine.permission_engine.set_auto_approve(True)
        order = []

        async def slow_nav(request):
            order.append("nav-start")
            await asyncio.sleep(0.05)
            order.append("nav-end")
            return text_result("nav")

        async def fast_clock(request):
            order.append("clock")
            return text_result("clock")

        owner_client.register_local_owner("ext-nav", slow_nav)
        owner_client.register_local_owner("ext-clock", fast_clock)
        events = []

        await loop.execute_prompt("go", events.append)

        assert order == ["nav-start", "nav-end", "clock"]
        tool_messages = [m for m in loop.history if m.role == Role.TOOL]
        assert [(m.tool_call_id, m.content) for m in tool_messages] == [("call_1", "nav"), ("call_2", "clock")]
        assert [e.tool_call.id for e in events if e.type == "tool_result"] == ["call_1", "call_2"]
        assistant_calls = [m for m in loop.history if m.tool_calls]
        assert len(assistant_calls) == 1
        assert [c.id for c in assistant_calls[0].tool_calls] == ["call_1", "call_2"]

    @pytest.mark.asyncio
    async def test_message_complete_with_tool_calls_is_not_recorded(self, store, clock_now):
        turn = tool_turn(ToolCall(id="call_1", name="clock.now")) + [MessageComplete(content="thinking")]
        loop, _, owner_client = build_loop(store, [turn, text_turn("It is noon.")])
        await loop.registry.register_owner("ext-clock", [clock_now])
        await loop.tool_engine.permission_engine.set_auto_approve(True)
        owner_client.register_local_owner("ext-clock", AsyncMock(return_value=text_result("12:00")))
        events = []

        await loop.execute_prompt("time?", events.append)

        assert "thinking" not in [m.content for m in loop.history]
        assert [e.content for e in events if e.type == "message_complete"] == ["thinking", "It is noon."]

    @pytest.mark.asyncio
    async def test_error_ends_prompt_without_partial_history(self, store):
        loop, adapter, _ = build_loop(store, [error_turn("rate limited")])
        events = []

        error = await loop.execute_prompt("hi", events.append)

        assert error == "rate limited"
        assert loop.history == []
        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_error_after_tool_iteration_keeps_completed_iteration(self, store):
        loop, _, _ = build_loop(store, [
            tool_turn(ToolCall(id="call_1", name="fs.list")),
            error_turn("server error"),
        ])

        error = await loop.execute_prompt("list", lambda e: None)

        assert error == "server error"
        assert [m.role for m in loop.history] == [Role.USER, Role.ASSISTANT, Role.TOOL]

    @pytest.mark.asyncio
    async def test_cancellation_leaves_no_partial_turn(self, store, nav_click):
        waiting = asyncio.Event()

        async def never_answers(registration, tool_call, context):
            waiting.set()
            await asyncio.Event().wait()

        loop, _, _ = build_loop(store, [
            text_turn("First answer."),
            tool_turn(ToolCall(id="call_1", name="nav.click")),
        ], request_permission=never_answers)
        await loop.registry.register_owner("ext-nav", [nav_click])

        await loop.execute_prompt("first", lambda e: None)
        task = asyncio.create_task(loop.execute_prompt("second", lambda e: None))
        await waiting.wait()
        assert loop.state == LoopState.AWAITING_PERMISSION

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [m.content for m in loop.history] == ["first", "First answer."]
        assert not loop.busy

    @pytest.mark.asyncio
    async def test_async_event_callback(self, store):
        loop, _, _ = build_loop(store, [text_turn("ok")])
        received = []

        async def on_event(event):
            received.append(event.type)

        await loop.execute_prompt("hi", on_event)

        assert received == ["message_start", "message_update", "message_complete"]
