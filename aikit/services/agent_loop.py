"""Agent loop: alternates model turns and tool executions until the model answers."""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

from aikit.adapters.base import AIAdapter, EventCallback, emit
from aikit.infra.config import config
from aikit.models.events import AIEvent, ErrorEvent, MessageComplete, ToolResult, ToolUse
from aikit.models.message import Message, ToolCall
from aikit.models.permission import ToolContext
from aikit.models.tool import ToolRegistration
from aikit.services.tool_execution_engine import PermissionPrompter, ToolExecutionEngine
from aikit.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    COLLECTING_TOOL_CALLS = "collecting_tool_calls"
    AWAITING_PERMISSION = "awaiting_permission"
    EXECUTING_TOOL = "executing_tool"
    DONE = "done"


class AgentLoop:
    """
    One conversation with the model.

    Messages produced while handling a prompt are staged and appended to
    ``history`` only when an iteration completes (model turn plus all of
    its tool results), so a cancelled or failed iteration leaves no
    partial turn behind.
    """

    def __init__(
        self,
        adapter: AIAdapter,
        registry: ToolRegistry,
        tool_engine: ToolExecutionEngine,
        system_prompt: Optional[str] = None,
        request_permission: Optional[PermissionPrompter] = None,
        conversation_id: Optional[str] = None,
    ) -> None:
        self.adapter = adapter
        self.registry = registry
        self.tool_engine = tool_engine
        self.system_prompt = system_prompt if system_prompt is not None else config.SYSTEM_PROMPT
        self.request_permission = request_permission
        self.conversation_id = conversation_id
        self.history: List[Message] = []
        self.state = LoopState.IDLE
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def reset(self) -> None:
        self.history = []
        self.state = LoopState.IDLE

    async def execute_prompt(
        self,
        prompt: str,
        on_event: EventCallback,
        context: Optional[ToolContext] = None,
    ) -> Optional[str]:
        """
        Run a prompt to completion.

        Args:
            prompt: User prompt
            on_event: Receives every adapter event plus one ``tool_result``
                per executed call
            context: Page context for domain-aware tools

        Returns:
            The error message if the model turn failed, else None
        """
        async with self._lock:
            try:
                return await self._run(prompt, on_event, context)
            finally:
                self.state = LoopState.DONE

    async def _run(
        self,
        prompt: str,
        on_event: EventCallback,
        context: Optional[ToolContext],
    ) -> Optional[str]:
        staged: List[Message] = [Message.user(prompt)]
        iteration = 0

        while True:
            iteration += 1
            tool_calls: List[ToolCall] = []
            final_text: List[str] = []
            errors: List[str] = []

            async def handle_event(event: AIEvent) -> None:
                if isinstance(event, ToolUse):
                    self.state = LoopState.COLLECTING_TOOL_CALLS
                    tool_calls.append(event.tool_call)
                elif isinstance(event, MessageComplete):
                    final_text.append(event.content)
                elif isinstance(event, ErrorEvent):
                    errors.append(event.error)
                await emit(on_event, event)

            self.state = LoopState.AWAITING_MODEL
            await self.adapter.send_message(
                self.history + staged,
                self.registry.get_ai_tools(),
                self.system_prompt,
                handle_event,
            )

            if errors:
                logger.warning(
                    f"Prompt ended by model error on iteration {iteration}: {errors[0]}",
                    extra={"conversation_id": self.conversation_id},
                )
                return errors[0]

            if not tool_calls:
                staged.append(Message.assistant(final_text[-1] if final_text else ""))
                self._commit(staged)
                logger.info(
                    f"Prompt completed after {iteration} iteration(s)",
                    extra={"conversation_id": self.conversation_id},
                )
                return None

            staged.append(Message.assistant_tool_calls(tool_calls))
            for tool_call in tool_calls:
                self.state = LoopState.EXECUTING_TOOL
                result = await self.tool_engine.execute_tool_call(
                    tool_call,
                    context=context,
                    request_permission=self._prompter(),
                )
                await emit(on_event, ToolResult(tool_call=tool_call, result=result))
                staged.append(Message.tool(tool_call.id, result.text()))

            self._commit(staged)
            staged = []

    def _prompter(self) -> Optional[PermissionPrompter]:
        if self.request_permission is None:
            return None
        request_permission = self.request_permission

        async def prompt_user(
            registration: ToolRegistration,
            tool_call: ToolCall,
            context: Optional[ToolContext],
        ) -> bool:
            self.state = LoopState.AWAITING_PERMISSION
            try:
                return await request_permission(registration, tool_call, context)
            finally:
                self.state = LoopState.EXECUTING_TOOL

        return prompt_user

    def _commit(self, staged: List[Message]) -> None:
        self.history.extend(staged)
