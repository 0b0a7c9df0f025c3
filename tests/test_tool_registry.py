"""Tests for the tool registry."""

import pytest

from aikit.models.tool import ToolDescriptor
from aikit.services.tool_registry import ToolRegistry


class TestToolRegistry:
    @pytest.mark.asyncio
    async def test_register_and_flatten(self, nav_click, clock_now):
        registry = ToolRegistry()

        count = await registry.register_owner("ext-nav", [nav_click], endpoint="http://nav/execute")
        await registry.register_owner("ext-clock", [clock_now])

        assert count == 1
        assert registry.get("nav.click").owner_id == "ext-nav"
        assert registry.get_endpoint("ext-nav") == "http://nav/execute"
        assert registry.get_endpoint("ext-clock") is None
        ai_tools = {t.name: t for t in registry.get_ai_tools()}
        assert set(ai_tools) == {"nav.click", "clock.now"}
        assert ai_tools["nav.click"].input_schema == nav_click.parameters
        assert ai_tools["nav.click"].description == nav_click.description

    @pytest.mark.asyncio
    async def test_same_name_overwrites_across_owners(self, nav_click):
        registry = ToolRegistry()
        replacement = ToolDescriptor(name="nav.click", description="Better click")

        await registry.register_owner("ext-a", [nav_click])
        await registry.register_owner("ext-b", [replacement])

        registration = registry.get("nav.click")
        assert registration.owner_id == "ext-b"
        assert registration.descriptor.description == "Better click"
        assert len(registry.list_registrations()) == 1

    @pytest.mark.asyncio
    async def test_unregister_removes_all_owner_tools(self, nav_click, clock_now):
        registry = ToolRegistry()
        scroll = ToolDescriptor(name="nav.scroll")
        await registry.register_owner("ext-nav", [nav_click, scroll], endpoint="http://nav/execute")
        await registry.register_owner("ext-clock", [clock_now])

        removed = await registry.unregister_owner("ext-nav")

        assert removed == 2
        assert registry.tool_names() == ["clock.now"]
        assert registry.get_endpoint("ext-nav") is None

    @pytest.mark.asyncio
    async def test_unregister_unknown_owner(self):
        registry = ToolRegistry()
        assert await registry.unregister_owner("nobody") == 0

    @pytest.mark.asyncio
    async def test_snapshot_is_stable_during_writes(self, nav_click, clock_now):
        registry = ToolRegistry()
        await registry.register_owner("ext-nav", [nav_click])

        snapshot = registry.list_registrations()
        await registry.register_owner("ext-clock", [clock_now])

        assert [r.descriptor.name for r in snapshot] == ["nav.click"]
