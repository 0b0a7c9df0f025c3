"""Registry of tools exposed by external owners."""

import asyncio
import logging
from typing import Dict, List, Optional

from aikit.infra.metrics import registered_tools
from aikit.models.tool import AITool, ToolDescriptor, ToolRegistration

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Tool name -> owner mapping.

    Tool names are unique across owners; registering a name that already
    exists overwrites it (possibly moving it to another owner). Writes are
    serialized; reads return snapshots and never block.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, ToolRegistration] = {}
        self._endpoints: Dict[str, Optional[str]] = {}
        self._lock = asyncio.Lock()

    async def register_owner(
        self,
        owner_id: str,
        tools: List[ToolDescriptor],
        endpoint: Optional[str] = None,
    ) -> int:
        """
        Register (or re-register) the tools of one owner.

        Args:
            owner_id: Owner identity (extension id)
            tools: Tool descriptors supplied by the owner
            endpoint: Where TOOL_EXECUTE requests for this owner are delivered

        Returns:
            Number of tools registered
        """
        async with self._lock:
            tools_map = dict(self._tools)
            for descriptor in tools:
                previous = tools_map.get(descriptor.name)
                if previous is not None and previous.owner_id != owner_id:
                    logger.warning(
                        f"Tool {descriptor.name} re-registered by {owner_id} (was {previous.owner_id})"
                    )
                tools_map[descriptor.name] = ToolRegistration(owner_id=owner_id, descriptor=descriptor)
            self._tools = tools_map
            if endpoint is not None or owner_id not in self._endpoints:
                self._endpoints[owner_id] = endpoint
            registered_tools.set(len(tools_map))

        logger.info(f"Registered {len(tools)} tools from {owner_id}")
        return len(tools)

    async def unregister_owner(self, owner_id: str) -> int:
        """Remove every tool of an owner at once. Returns how many were removed."""
        async with self._lock:
            remaining = {
                name: registration
                for name, registration in self._tools.items()
                if registration.owner_id != owner_id
            }
            removed = len(self._tools) - len(remaining)
            self._tools = remaining
            self._endpoints.pop(owner_id, None)
            registered_tools.set(len(remaining))

        logger.info(f"Unregistered owner {owner_id} ({removed} tools)")
        return removed

    def get(self, tool_name: str) -> Optional[ToolRegistration]:
        return self._tools.get(tool_name)

    def get_endpoint(self, owner_id: str) -> Optional[str]:
        return self._endpoints.get(owner_id)

    def list_registrations(self) -> List[ToolRegistration]:
        return list(self._tools.values())

    def tool_names(self) -> List[str]:
        return list(self._tools)

    def get_ai_tools(self) -> List[AITool]:
        """Flatten every registered tool into the catalog handed to adapters."""
        return [
            AITool(
                name=registration.descriptor.name,
                description=registration.descriptor.description,
                input_schema=registration.descriptor.parameters,
            )
            for registration in self._tools.values()
        ]

    async def reset(self) -> None:
        async with self._lock:
            self._tools = {}
            self._endpoints = {}
            registered_tools.set(0)
