"""Tool execution engine that checks permissions and dispatches to tool owners."""

import logging
import time
from typing import Awaitable, Callable, Optional

from aikit.adapters.tool_owner_client import ToolOwnerClient
from aikit.infra.error_handler import PermissionTimeoutError, ToolDispatchError
from aikit.infra.metrics import tool_calls_total, tool_call_duration
from aikit.models.message import ToolCall
from aikit.models.permission import ToolContext
from aikit.models.tool import ToolExecutionResult, ToolRegistration
from aikit.services.permission_engine import PermissionEngine
from aikit.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

# Asks the user whether a call may run; returns True when granted
PermissionPrompter = Callable[[ToolRegistration, ToolCall, Optional[ToolContext]], Awaitable[bool]]


def unknown_tool_result(tool_name: str) -> ToolExecutionResult:
    text = f"Unknown tool: {tool_name}"
    return ToolExecutionResult.from_error(text, text)


def policy_denied_result(tool_name: str) -> ToolExecutionResult:
    return ToolExecutionResult.from_error(f"Permission denied for tool: {tool_name}", "Permission denied")


def user_denied_result(tool_name: str) -> ToolExecutionResult:
    return ToolExecutionResult.from_error(f"User denied permission for tool: {tool_name}", "User denied permission")


def owner_error_result(error: str) -> ToolExecutionResult:
    return ToolExecutionResult.from_error(f"Error: {error}", error)


class ToolExecutionEngine:
    """Runs a single tool call: lookup, permission, dispatch.

    Never raises for unknown tools, denials or owner failures; those are
    folded into the returned result with ``error`` set.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        permission_engine: PermissionEngine,
        owner_client: ToolOwnerClient,
    ) -> None:
        self.registry = registry
        self.permission_engine = permission_engine
        self.owner_client = owner_client

    async def execute_tool_call(
        self,
        tool_call: ToolCall,
        context: Optional[ToolContext] = None,
        request_permission: Optional[PermissionPrompter] = None,
    ) -> ToolExecutionResult:
        """
        Execute a tool call on behalf of the agent loop.

        Args:
            tool_call: Call issued by the model (original tool name)
            context: Page context of the prompt; only domain-aware tools see it
            request_permission: Prompter used when no stored decision applies;
                without one, prompting counts as a denial

        Returns:
            Tool execution result
        """
        registration = self.registry.get(tool_call.name)
        if registration is None:
            logger.warning(f"Model called unknown tool {tool_call.name}")
            tool_calls_total.labels(tool_name=tool_call.name, status="unknown").inc()
            return unknown_tool_result(tool_call.name)

        descriptor = registration.descriptor
        tool_context = context if self.permission_engine.is_domain_aware_tool(tool_call.name, descriptor) else None

        check = await self.permission_engine.check_permission(tool_call.name, tool_context, descriptor)
        if not check.allowed and not check.requires_prompt:
            logger.info(f"Tool {tool_call.name} denied by stored decision")
            tool_calls_total.labels(tool_name=tool_call.name, status="denied").inc()
            return policy_denied_result(tool_call.name)

        if check.requires_prompt:
            granted = False
            if request_permission is not None:
                try:
                    granted = await request_permission(registration, tool_call, tool_context)
                except PermissionTimeoutError as e:
                    logger.warning(f"No answer for {tool_call.name}: {e}")
            if not granted:
                tool_calls_total.labels(tool_name=tool_call.name, status="denied").inc()
                return user_denied_result(tool_call.name)

        return await self._dispatch(registration, tool_call)

    async def _dispatch(self, registration: ToolRegistration, tool_call: ToolCall) -> ToolExecutionResult:
        start_time = time.time()
        status = "success"
        try:
            result = await self.owner_client.execute(
                owner_id=registration.owner_id,
                endpoint=self.registry.get_endpoint(registration.owner_id),
                tool_name=tool_call.name,
                params=tool_call.input,
                tool_call_id=tool_call.id,
            )
            if result.error:
                status = "error"
                return owner_error_result(result.error)
            return result
        except ToolDispatchError as e:
            status = "error"
            logger.error(f"Error executing tool {tool_call.name}: {e}")
            return owner_error_result(str(e))
        except Exception as e:
            status = "error"
            logger.error(f"Error executing tool {tool_call.name}: {e}", exc_info=True)
            return owner_error_result(str(e) or type(e).__name__)
        finally:
            tool_calls_total.labels(tool_name=tool_call.name, status=status).inc()
            tool_call_duration.labels(tool_name=tool_call.name).observe(time.time() - start_time)
