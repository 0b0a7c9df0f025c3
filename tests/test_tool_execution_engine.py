"""Tests for tool execution: permission gating and owner dispatch."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from aikit.adapters.tool_owner_client import ToolOwnerClient, build_execute_request
from aikit.infra.error_handler import PermissionTimeoutError, ToolDispatchError
from aikit.models.message import ToolCall
from aikit.models.permission import PermissionDecision, ToolContext
from aikit.services.permission_engine import PermissionEngine
from aikit.services.tool_execution_engine import ToolExecutionEngine
from aikit.services.tool_registry import ToolRegistry

from fakes import text_result

PAGE = ToolContext(url="https://example.com/a", tab_id=3)


@pytest.fixture
def owner_client():
    return ToolOwnerClient(timeout=5)


@pytest.fixture
def engine(store, owner_client):
    registry = ToolRegistry()
    permissions = PermissionEngine(store, domain_aware_prefixes=["nav."])
    return ToolExecutionEngine(registry, permissions, owner_client)


class TestToolExecutionEngine:
    """Test permission gating and result folding."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, engine):
        result = await engine.execute_tool_call(ToolCall(id="c1", name="fs.list"))

        assert result.error == "Unknown tool: fs.list"
        assert result.text() == "Unknown tool: fs.list"

    @pytest.mark.asyncio
    async def test_allowed_tool_is_dispatched(self, engine, owner_client, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        await engine.permission_engine.store_permission("nav.click", PermissionDecision.ALWAYS_ALLOW)
        handler = AsyncMock(return_value=text_result("clicked"))
        owner_client.register_local_owner("ext-nav", handler)
        prompter = AsyncMock()

        result = await engine.execute_tool_call(
            ToolCall(id="c1", name="nav.click", input={"selector": "#go"}),
            context=PAGE,
            request_permission=prompter,
        )

        assert result.text() == "clicked"
        assert result.error is None
        prompter.assert_not_awaited()
        handler.assert_awaited_once_with({
            "type": "TOOL_EXECUTE",
            "toolName": "nav.click",
            "params": {"selector": "#go"},
            "toolCallId": "c1",
        })

    @pytest.mark.asyncio
    async def test_stored_deny_never_prompts(self, engine, owner_client, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        await engine.permission_engine.store_permission("nav.click", PermissionDecision.ALWAYS_DENY, "example.com")
        handler = AsyncMock()
        owner_client.register_local_owner("ext-nav", handler)
        prompter = AsyncMock(return_value=True)

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE, prompter)

        assert result.text() == "Permission denied for tool: nav.click"
        assert result.error == "Permission denied"
        prompter.assert_not_awaited()
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_prompt_receives_context_for_domain_aware_tool(self, engine, owner_client, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        owner_client.register_local_owner("ext-nav", AsyncMock(return_value=text_result("ok")))
        prompter = AsyncMock(return_value=True)

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE, prompter)

        assert result.text() == "ok"
        registration, tool_call, context = prompter.await_args.args
        assert registration.owner_id == "ext-nav"
        assert tool_call.name == "nav.click"
        assert context == PAGE

    @pytest.mark.asyncio
    async def test_non_domain_aware_tool_gets_no_context(self, engine, owner_client, clock_now):
        await engine.registry.register_owner("ext-clock", [clock_now])
        owner_client.register_local_owner("ext-clock", AsyncMock(return_value=text_result("noon")))
        prompter = AsyncMock(return_value=True)

        await engine.execute_tool_call(ToolCall(id="c1", name="clock.now"), PAGE, prompter)

        assert prompter.await_args.args[2] is None

    @pytest.mark.asyncio
    async def test_user_denial(self, engine, owner_client, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        handler = AsyncMock()
        owner_client.register_local_owner("ext-nav", handler)

        result = await engine.execute_tool_call(
            ToolCall(id="c1", name="nav.click"), PAGE, AsyncMock(return_value=False)
        )

        assert result.text() == "User denied permission for tool: nav.click"
        assert result.error == "User denied permission"
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_prompt_timeout_is_user_denial(self, engine, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        prompter = AsyncMock(side_effect=PermissionTimeoutError("perm-1", 60))

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE, prompter)

        assert result.text() == "User denied permission for tool: nav.click"

    @pytest.mark.asyncio
    async def test_no_prompter_denies(self, engine, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE)

        assert result.error == "User denied permission"

    @pytest.mark.asyncio
    async def test_owner_error_is_folded(self, engine, owner_client, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        await engine.permission_engine.set_auto_approve(True)
        owner_client.register_local_owner(
            "ext-nav", AsyncMock(return_value={"content": [], "error": "element not found"})
        )

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE)

        assert result.text() == "Error: element not found"
        assert result.error == "element not found"

    @pytest.mark.asyncio
    async def test_owner_exception_is_folded(self, engine, owner_client, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        await engine.permission_engine.set_auto_approve(True)
        owner_client.register_local_owner("ext-nav", AsyncMock(side_effect=RuntimeError("owner crashed")))

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE)

        assert result.text() == "Error: owner crashed"

    @pytest.mark.asyncio
    async def test_unreachable_owner(self, engine, nav_click):
        await engine.registry.register_owner("ext-nav", [nav_click])
        await engine.permission_engine.set_auto_approve(True)

        result = await engine.execute_tool_call(ToolCall(id="c1", name="nav.click"), PAGE)

        assert result.error == "Owner 'ext-nav' has no reachable endpoint"


class TestToolOwnerClient:
    """Test HTTP dispatch to owners."""

    def test_build_execute_request(self):
        assert build_execute_request("nav.click", {"a": 1}, "c1") == {
            "type": "TOOL_EXECUTE",
            "toolName": "nav.click",
            "params": {"a": 1},
            "toolCallId": "c1",
        }

    @pytest.mark.asyncio
    async def test_execute_http_success(self, owner_client):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_response_obj = MagicMock()
            mock_response_obj.json.return_value = {"content": [{"type": "text", "text": "done"}], "details": {"n": 1}}
            mock_response_obj.raise_for_status = MagicMock()
            mock_client.post.return_value = mock_response_obj
            mock_client_class.return_value.__aenter__.return_value = mock_client

            result = await owner_client.execute("ext-nav", "http://owner/execute", "nav.click", {"a": 1}, "c1")

            assert result.text() == "done"
            assert result.details == {"n": 1}
            call_kwargs = mock_client.post.call_args.kwargs
            assert mock_client.post.call_args.args[0] == "http://owner/execute"
            assert call_kwargs["json"]["type"] == "TOOL_EXECUTE"
            assert call_kwargs["headers"]["X-AIKit-Owner-ID"] == "ext-nav"

    @pytest.mark.asyncio
    async def test_execute_http_timeout(self, owner_client):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.post.side_effect = httpx.ReadTimeout("slow")
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(ToolDispatchError, match="timed out after 5s"):
                await owner_client.execute("ext-nav", "http://owner/execute", "nav.click", {}, "c1")

    @pytest.mark.asyncio
    async def test_invalid_result_shape(self, owner_client):
        owner_client.register_local_owner("ext-nav", AsyncMock(return_value=["not", "an", "object"]))

        with pytest.raises(ToolDispatchError, match="non-object"):
            await owner_client.execute("ext-nav", None, "nav.click", {}, "c1")

    @pytest.mark.asyncio
    async def test_local_owner_wins_over_endpoint(self, owner_client):
        handler = AsyncMock(return_value={"content": []})
        owner_client.register_local_owner("ext-nav", handler)

        with patch("httpx.AsyncClient") as mock_client_class:
            result = await owner_client.execute("ext-nav", "http://owner/execute", "nav.click", {}, "c1")
            mock_client_class.assert_not_called()

        assert result.text() == "Tool executed"

        owner_client.unregister_local_owner("ext-nav")
        with pytest.raises(ToolDispatchError):
            await owner_client.execute("ext-nav", None, "nav.click", {}, "c1")
