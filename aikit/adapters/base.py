"""Provider adapter contract.

Every adapter turns a canonical request (history, tool catalog, system
prompt) into one provider call and reports progress through canonical
events. The base class owns the parts of the contract that are identical
for all providers:

- exactly one ``message_start`` first
- any exception becomes exactly one ``error`` event, never a raise
- tool names are rewritten to a provider-safe form per call and mapped back
"""

import abc
import asyncio
import logging
import re
import time
from typing import Awaitable, Callable, Dict, List, Optional, Union

from aikit.infra.metrics import llm_calls_total, llm_call_duration
from aikit.models.events import AIEvent, ErrorEvent, MessageStart
from aikit.models.message import Message
from aikit.models.tool import AITool

logger = logging.getLogger(__name__)

EventCallback = Callable[[AIEvent], Union[None, Awaitable[None]]]

_DISALLOWED_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def normalize_tool_name(name: str) -> str:
    """Rewrite a tool name to the character set every provider accepts."""
    return _DISALLOWED_NAME_CHARS.sub("_", name)


async def emit(on_event: EventCallback, event: AIEvent) -> None:
    """Deliver an event to a sync or async callback."""
    result = on_event(event)
    if asyncio.iscoroutine(result):
        await result


class ToolNameMap:
    """Provider-safe name <-> original name mapping for one call."""

    def __init__(self, tools: Optional[List[AITool]] = None) -> None:
        self._to_original: Dict[str, str] = {}
        self._to_provider: Dict[str, str] = {}
        for tool in tools or []:
            self.add(tool.name)

    def add(self, original: str) -> str:
        if original in self._to_provider:
            return self._to_provider[original]
        candidate = normalize_tool_name(original)
        safe = candidate
        suffix = 2
        while safe in self._to_original:
            safe = f"{candidate}_{suffix}"
            suffix += 1
        self._to_original[safe] = original
        self._to_provider[original] = safe
        return safe

    def to_provider(self, original: str) -> str:
        """Provider-safe name; tools absent from this call are normalized directly."""
        return self._to_provider.get(original) or normalize_tool_name(original)

    def to_original(self, provider_name: str) -> str:
        return self._to_original.get(provider_name, provider_name)

    def __len__(self) -> int:
        return len(self._to_original)


class AIAdapter(abc.ABC):
    """Abstract provider adapter."""

    provider: str = ""

    def __init__(self, model: str) -> None:
        self.model = model

    async def send_message(
        self,
        messages: List[Message],
        tools: List[AITool],
        system_prompt: str,
        on_event: EventCallback,
    ) -> None:
        """Run one model turn, reporting progress through ``on_event``.

        Never raises for provider or network failures; those are reported
        as a single ``error`` event.
        """
        start_time = time.time()
        status = "success"
        # One map per call; concurrent calls on a shared adapter must not see each other's names
        names = ToolNameMap(tools)
        try:
            await emit(on_event, MessageStart())
            await self._send(messages, tools, system_prompt, on_event, names)
        except asyncio.CancelledError:
            status = "cancelled"
            raise
        except Exception as e:
            status = "failure"
            logger.warning(
                f"{self.provider} turn failed: {type(e).__name__}: {e}",
                extra={"provider": self.provider, "model": self.model},
            )
            await emit(on_event, ErrorEvent(error=str(e) or "Unknown error occurred"))
        finally:
            llm_calls_total.labels(provider=self.provider, status=status).inc()
            llm_call_duration.labels(provider=self.provider).observe(time.time() - start_time)

    @abc.abstractmethod
    async def _send(
        self,
        messages: List[Message],
        tools: List[AITool],
        system_prompt: str,
        on_event: EventCallback,
        names: ToolNameMap,
    ) -> None:
        """Provider-specific turn. May raise; the base class reports errors."""
