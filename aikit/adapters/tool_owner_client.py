"""Client that delivers TOOL_EXECUTE requests to the owner of a tool.

Owners are reached over HTTP (the endpoint they supplied when registering)
or, for owners living in the same process, through a registered coroutine.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional
import httpx
from pydantic import ValidationError as PydanticValidationError

from aikit.infra.config import config
from aikit.infra.error_handler import ToolDispatchError
from aikit.models.tool import ToolExecutionResult

logger = logging.getLogger(__name__)

LocalOwnerHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


def build_execute_request(tool_name: str, params: Dict[str, Any], tool_call_id: str) -> Dict[str, Any]:
    """Build the TOOL_EXECUTE message sent to an owner."""
    return {
        "type": "TOOL_EXECUTE",
        "toolName": tool_name,
        "params": params,
        "toolCallId": tool_call_id,
    }


class ToolOwnerClient:
    """Dispatches tool executions to owners."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout if timeout is not None else config.TOOL_EXECUTION_TIMEOUT
        self._local_owners: Dict[str, LocalOwnerHandler] = {}

    def register_local_owner(self, owner_id: str, handler: LocalOwnerHandler) -> None:
        """Route executions for ``owner_id`` to an in-process coroutine."""
        self._local_owners[owner_id] = handler

    def unregister_local_owner(self, owner_id: str) -> None:
        self._local_owners.pop(owner_id, None)

    async def execute(
        self,
        owner_id: str,
        endpoint: Optional[str],
        tool_name: str,
        params: Dict[str, Any],
        tool_call_id: str,
    ) -> ToolExecutionResult:
        """
        Execute a tool on its owner.

        Args:
            owner_id: Registered owner of the tool
            endpoint: Owner HTTP endpoint, if it registered one
            tool_name: Original tool name
            params: Structured arguments from the model
            tool_call_id: Provider call id, forwarded for correlation

        Returns:
            The owner's result (which may carry ``error``)

        Raises:
            ToolDispatchError: If the owner cannot be reached or replies with garbage
        """
        request = build_execute_request(tool_name, params, tool_call_id)
        start_time = time.time()

        handler = self._local_owners.get(owner_id)
        if handler is not None:
            payload = await handler(request)
        elif endpoint:
            payload = await self._execute_http(owner_id, endpoint, tool_name, request)
        else:
            raise ToolDispatchError(tool_name, f"Owner '{owner_id}' has no reachable endpoint")

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Tool {tool_name} executed by {owner_id}",
            extra={"tool_name": tool_name, "owner_id": owner_id, "latency_ms": latency_ms},
        )

        if not isinstance(payload, dict):
            raise ToolDispatchError(tool_name, f"Owner '{owner_id}' returned a non-object response")
        try:
            return ToolExecutionResult.model_validate(payload)
        except PydanticValidationError as e:
            raise ToolDispatchError(tool_name, f"Owner '{owner_id}' returned an invalid result: {e}") from e

    async def _execute_http(
        self,
        owner_id: str,
        endpoint: str,
        tool_name: str,
        request: Dict[str, Any],
    ) -> Any:
        """Execute via HTTP POST to the owner's endpoint."""
        headers = {
            "Content-Type": "application/json",
            "X-AIKit-Owner-ID": owner_id,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(endpoint, json=request, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                raise ToolDispatchError(tool_name, f"Tool owner timed out after {self.timeout:g}s") from e
            except httpx.HTTPStatusError as e:
                raise ToolDispatchError(
                    tool_name, f"Tool owner returned HTTP {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise ToolDispatchError(tool_name, f"Tool owner unreachable: {e}") from e
            except ValueError as e:
                raise ToolDispatchError(tool_name, "Tool owner returned invalid JSON") from e
