"""Orchestrator: owns the adapter, conversations, surfaces and permission prompts."""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from aikit.adapters.base import AIAdapter, EventCallback
from aikit.adapters.factory import create_adapter
from aikit.adapters.tool_owner_client import ToolOwnerClient
from aikit.infra.config import config
from aikit.infra.error_handler import (
    AdapterNotInitializedError,
    PermissionTimeoutError,
    PromptStoppedError,
    ValidationError,
)
from aikit.infra.metrics import connected_surfaces, permission_prompts_total
from aikit.infra.storage import KeyValueStore
from aikit.models.message import ToolCall
from aikit.models.permission import (
    PermissionDecision,
    PermissionRequestMessage,
    PermissionResponseMessage,
    PermissionScope,
    StoredPermission,
    ToolContext,
)
from aikit.models.tool import ToolDescriptor, ToolRegistration
from aikit.services.agent_loop import AgentLoop
from aikit.services.pending_requests import PendingRequestTracker
from aikit.services.permission_engine import PermissionEngine, extract_domain
from aikit.services.tool_execution_engine import ToolExecutionEngine
from aikit.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_ID = "default"

# Keys of the persisted provider configuration
PROVIDER_CONFIG_KEYS = ("provider", "model", "apiKey", "baseURL")

SurfaceSender = Callable[[Dict[str, Any]], Awaitable[None]]
AdapterFactory = Callable[..., AIAdapter]


class Orchestrator:
    """
    Central coordinator shared by every surface.

    Conversations are keyed by id and run strictly sequentially; they share
    only the tool registry and the permission store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        registry: Optional[ToolRegistry] = None,
        permission_engine: Optional[PermissionEngine] = None,
        tracker: Optional[PendingRequestTracker] = None,
        owner_client: Optional[ToolOwnerClient] = None,
        adapter_factory: AdapterFactory = create_adapter,
        system_prompt: Optional[str] = None,
    ) -> None:
        self.store = store
        self.registry = registry or ToolRegistry()
        self.permission_engine = permission_engine or PermissionEngine(store)
        self.tracker = tracker or PendingRequestTracker()
        self.owner_client = owner_client or ToolOwnerClient()
        self.adapter_factory = adapter_factory
        self.system_prompt = system_prompt if system_prompt is not None else config.SYSTEM_PROMPT
        self.tool_engine = ToolExecutionEngine(self.registry, self.permission_engine, self.owner_client)
        self.adapter: Optional[AIAdapter] = None
        self._conversations: Dict[str, AgentLoop] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._surfaces: Dict[str, SurfaceSender] = {}
        self._surface_conversations: Dict[str, str] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # Tools

    async def register_tools(
        self,
        owner_id: str,
        tools: List[ToolDescriptor],
        endpoint: Optional[str] = None,
    ) -> int:
        """
        Register an owner's tools.

        Raises:
            ValidationError: If the batch names the same tool twice
        """
        names = [tool.name for tool in tools]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate tool names: {', '.join(duplicates)}")
        return await self.registry.register_owner(owner_id, tools, endpoint)

    async def unregister_tools(self, owner_id: str) -> int:
        return await self.registry.unregister_owner(owner_id)

    def get_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": registration.descriptor.name,
                "extensionId": registration.owner_id,
                "descriptor": registration.descriptor.model_dump(by_alias=True, exclude_none=True),
            }
            for registration in self.registry.list_registrations()
        ]

    # Adapter

    async def initialize_adapter(
        self,
        provider: str,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        persist: bool = True,
    ) -> AIAdapter:
        """
        Create the provider adapter used by every conversation.

        Args:
            provider: anthropic, openai or google
            api_key: Provider API key
            model: Model name (provider default when omitted)
            base_url: Optional API base URL override
            persist: Store the configuration so it is restored on startup

        Raises:
            UnsupportedProviderError: If the provider is unknown
        """
        adapter = self.adapter_factory(provider, api_key, model=model, base_url=base_url)
        self.adapter = adapter
        for loop in self._conversations.values():
            loop.adapter = adapter

        if persist:
            await self.store.set_many({
                "provider": provider,
                "model": model,
                "apiKey": api_key,
                "baseURL": base_url,
            })

        logger.info("AI adapter initialized", extra={"provider": adapter.provider, "model": adapter.model})
        return adapter

    async def restore_adapter(self) -> bool:
        """Re-create the adapter from stored provider configuration, if any."""
        stored = await self.store.get_many(PROVIDER_CONFIG_KEYS)
        if not stored.get("provider") or not stored.get("apiKey"):
            return False
        try:
            await self.initialize_adapter(
                stored["provider"],
                stored["apiKey"],
                model=stored.get("model"),
                base_url=stored.get("baseURL"),
                persist=False,
            )
        except Exception as e:
            logger.error(f"Failed to restore adapter from stored config: {e}")
            return False
        return True

    # Conversations

    def find_conversation(self, conversation_id: str) -> Optional[AgentLoop]:
        """Existing conversation, or None; never creates one."""
        return self._conversations.get(conversation_id)

    def get_conversation(self, conversation_id: str = DEFAULT_CONVERSATION_ID) -> AgentLoop:
        loop = self._conversations.get(conversation_id)
        if loop is None:
            if self.adapter is None:
                raise AdapterNotInitializedError()
            loop = AgentLoop(
                adapter=self.adapter,
                registry=self.registry,
                tool_engine=self.tool_engine,
                system_prompt=self.system_prompt,
                request_permission=functools.partial(self.request_permission, conversation_id=conversation_id),
                conversation_id=conversation_id,
            )
            self._conversations[conversation_id] = loop
        return loop

    def drop_conversation(self, conversation_id: str) -> None:
        task = self._tasks.get(conversation_id)
        if task is not None and not task.done():
            task.cancel()
        self._conversations.pop(conversation_id, None)
        self.tracker.discard_conversation(conversation_id)

    async def execute_prompt(
        self,
        prompt: str,
        on_event: EventCallback,
        context: Optional[ToolContext] = None,
        conversation_id: str = DEFAULT_CONVERSATION_ID,
    ) -> Optional[str]:
        """
        Run a prompt in a conversation.

        Returns:
            The model error that ended the prompt, or None

        Raises:
            AdapterNotInitializedError: If no adapter is configured
            PromptStoppedError: If stop_prompt() cancelled the run
        """
        if self.adapter is None:
            raise AdapterNotInitializedError()
        loop = self.get_conversation(conversation_id)

        task = asyncio.create_task(loop.execute_prompt(prompt, on_event, context))
        self._tasks[conversation_id] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._tasks.get(conversation_id) is task:
                del self._tasks[conversation_id]

        if task.cancelled():
            raise PromptStoppedError()
        return task.result()

    async def stop_prompt(self, conversation_id: str = DEFAULT_CONVERSATION_ID) -> bool:
        task = self._tasks.get(conversation_id)
        if task is None or task.done():
            return False
        task.cancel()
        self.tracker.discard_conversation(conversation_id)
        logger.info("Stopped prompt", extra={"conversation_id": conversation_id})
        return True

    # Surfaces

    def add_surface(self, surface_id: str, send: SurfaceSender, conversation_id: Optional[str] = None) -> None:
        self._surfaces[surface_id] = send
        if conversation_id is not None:
            self._surface_conversations[surface_id] = conversation_id
        connected_surfaces.set(len(self._surfaces))

    def remove_surface(self, surface_id: str) -> None:
        self._surfaces.pop(surface_id, None)
        connected_surfaces.set(len(self._surfaces))

    def disconnect_surface(self, surface_id: str) -> None:
        """Remove a surface; its conversation is dropped once no surface is attached to it."""
        self.remove_surface(surface_id)
        conversation_id = self._surface_conversations.pop(surface_id, None)
        if conversation_id is not None and conversation_id not in self._surface_conversations.values():
            self.drop_conversation(conversation_id)
            logger.info("Dropped conversation", extra={"conversation_id": conversation_id})

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send a message to every live surface; returns how many received it."""
        delivered = 0
        for surface_id, send in list(self._surfaces.items()):
            try:
                await send(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping surface {surface_id}: {e}")
                self.remove_surface(surface_id)
        return delivered

    # Permissions

    async def request_permission(
        self,
        registration: ToolRegistration,
        tool_call: ToolCall,
        context: Optional[ToolContext],
        conversation_id: Optional[str] = None,
    ) -> bool:
        """
        Ask every surface whether a tool call may run and wait for one answer.

        Raises:
            PermissionTimeoutError: If nobody answered in time
        """
        domain = extract_domain(context.url) if context is not None else None
        entry = self.tracker.create(tool_call.name, domain, conversation_id)
        request = PermissionRequestMessage(
            request_id=entry.request_id,
            tool_name=tool_call.name,
            tool_descriptor=registration.descriptor,
            params=tool_call.input,
            context=context or ToolContext(),
        )

        try:
            delivered = await self.broadcast(request.model_dump(by_alias=True, exclude_none=True, mode="json"))
            if not delivered:
                logger.warning(f"No surface connected to answer permission request for {tool_call.name}")
            granted = await self.tracker.wait(entry)
        except PermissionTimeoutError:
            permission_prompts_total.labels(outcome="timeout").inc()
            raise
        except asyncio.CancelledError:
            permission_prompts_total.labels(outcome="abandoned").inc()
            raise
        finally:
            # wait() removes the entry, but a cancelled broadcast never reaches it
            self.tracker.discard(entry.request_id)

        permission_prompts_total.labels(outcome="granted" if granted else "denied").inc()
        return granted

    async def handle_permission_response(self, response: PermissionResponseMessage) -> bool:
        """Settle a pending request; returns False for unknown or stale ids."""
        entry = self.tracker.get(response.request_id)
        if entry is None:
            logger.warning(f"No pending permission request for: {response.request_id}")
            return False

        if response.remember:
            decision = PermissionDecision.ALWAYS_ALLOW if response.granted else PermissionDecision.ALWAYS_DENY
            domain = entry.domain if response.scope == PermissionScope.DOMAIN else None
            try:
                await self.permission_engine.store_permission(entry.tool_name, decision, domain)
            except OSError as e:
                logger.error(f"Failed to store permission: {e}")

        return self.tracker.resolve(response.request_id, response.granted) is not None

    async def allow_all_tools(self) -> int:
        names = self.registry.tool_names()
        for tool_name in names:
            await self.permission_engine.store_permission(tool_name, PermissionDecision.ALWAYS_ALLOW)
        return len(names)

    async def get_permissions(self) -> List[StoredPermission]:
        return await self.permission_engine.get_granted_permissions()

    async def revoke_permission(self, tool_name: str, domain: Optional[str] = None) -> bool:
        return await self.permission_engine.revoke_permission(tool_name, domain)

    async def set_auto_approve(self, enabled: bool) -> None:
        await self.permission_engine.set_auto_approve(enabled)

    async def get_auto_approve(self) -> bool:
        return await self.permission_engine.get_auto_approve()

    # Message surface

    async def handle_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch a control message (dict in, dict out)."""
        message_type = message.get("type")

        if message_type == "REGISTER_TOOLS":
            owner_id = message.get("ownerId") or message.get("extensionId")
            if not owner_id:
                return {"success": False, "error": "Missing ownerId"}
            try:
                tools = [ToolDescriptor.model_validate(t) for t in message.get("tools", [])]
                await self.register_tools(owner_id, tools, message.get("endpoint"))
            except (PydanticValidationError, ValidationError) as e:
                return {"success": False, "error": str(e)}
            return {"success": True}

        if message_type == "UNREGISTER_TOOLS":
            owner_id = message.get("ownerId") or message.get("extensionId")
            if not owner_id:
                return {"success": False, "error": "Missing ownerId"}
            await self.unregister_tools(owner_id)
            return {"success": True}

        if message_type == "INIT_AGENT":
            if not message.get("apiKey") or not message.get("provider"):
                return {"success": False, "error": "Missing parameters"}
            await self.initialize_adapter(
                message["provider"],
                message["apiKey"],
                model=message.get("model"),
                base_url=message.get("baseURL"),
            )
            return {"success": True}

        if message_type == "GET_TOOLS":
            return {"tools": self.get_tools()}

        if message_type == "PERMISSION_RESPONSE":
            try:
                response = PermissionResponseMessage.model_validate(message)
            except PydanticValidationError as e:
                return {"success": False, "error": str(e)}
            await self.handle_permission_response(response)
            return {"success": True}

        if message_type == "GET_PERMISSIONS":
            permissions = await self.get_permissions()
            return {"permissions": [p.model_dump(by_alias=True, mode="json") for p in permissions]}

        if message_type == "REVOKE_PERMISSION":
            if not message.get("toolName"):
                return {"success": False, "error": "Missing toolName"}
            await self.revoke_permission(message["toolName"], message.get("domain"))
            return {"success": True}

        if message_type == "ALLOW_ALL_TOOLS":
            await self.allow_all_tools()
            return {"success": True}

        if message_type == "SET_AUTO_APPROVE":
            await self.set_auto_approve(bool(message.get("enabled")))
            return {"success": True}

        if message_type == "GET_AUTO_APPROVE":
            return {"enabled": await self.get_auto_approve()}

        logger.warning(f"Unknown message type: {message_type}")
        return {"success": False, "error": f"Unknown message type: {message_type}"}

    def start_sweeper(self, interval: float) -> None:
        """Periodically expire permission requests nobody is waiting on any more."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(interval))

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.tracker.sweep()

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        for task in list(self._tasks.values()):
            task.cancel()
        self.tracker.cancel_all()
        self._surfaces.clear()
        self._surface_conversations.clear()
        connected_surfaces.set(0)
