"""Anthropic vendor adapter for the Messages API with tool use."""

import asyncio
import logging
from typing import List, Dict, Any, Optional
from anthropic import AsyncAnthropic

from aikit.adapters.base import AIAdapter, EventCallback, ToolNameMap, emit
from aikit.infra.config import config
from aikit.infra.error_handler import retry_with_backoff, wrap_llm_error
from aikit.models.events import MessageComplete, MessageUpdate, ToolUse
from aikit.models.message import Message, Role, ToolCall
from aikit.models.tool import AITool

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"


def build_anthropic_tools(tools: List[AITool], names: ToolNameMap) -> List[Dict[str, Any]]:
    """Convert canonical tool catalog entries to Anthropic tool declarations."""
    return [
        {
            "name": names.to_provider(tool.name),
            "description": tool.description,
            "input_schema": tool.input_schema or {"type": "object", "properties": {}},
        }
        for tool in tools
    ]


def build_anthropic_messages(messages: List[Message], names: ToolNameMap) -> List[Dict[str, Any]]:
    """
    Convert canonical history to Anthropic messages.

    Anthropic has no tool role: results become ``tool_result`` blocks in a
    user message, and consecutive results share one user message.
    """
    anthropic_messages: List[Dict[str, Any]] = []
    for msg in messages:
        if msg.role == Role.TOOL:
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content or "",
            }
            previous = anthropic_messages[-1] if anthropic_messages else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                anthropic_messages.append({"role": "user", "content": [block]})
        elif msg.role == Role.ASSISTANT and msg.tool_calls:
            anthropic_messages.append({
                "role": "assistant",
                "content": [
                    {
                        "type": "tool_use",
                        "id": tc.id,
                        "name": names.to_provider(tc.name),
                        "input": tc.input,
                    }
                    for tc in msg.tool_calls
                ],
            })
        else:
            anthropic_messages.append({"role": msg.role.value, "content": msg.content or ""})
    return anthropic_messages


class AnthropicAdapter(AIAdapter):
    """Single-shot adapter for Claude models."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncAnthropic] = None,
        max_tokens: int = 4096,
        max_retries: int = 2,
    ) -> None:
        super().__init__(model or DEFAULT_ANTHROPIC_MODEL)
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.client = client or AsyncAnthropic(api_key=api_key, base_url=base_url)

    async def _send(
        self,
        messages: List[Message],
        tools: List[AITool],
        system_prompt: str,
        on_event: EventCallback,
        names: ToolNameMap,
    ) -> None:
        request_params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": build_anthropic_messages(messages, names),
        }
        if tools:
            request_params["tools"] = build_anthropic_tools(tools, names)

        async def call_llm():
            try:
                return await asyncio.wait_for(
                    self.client.messages.create(**request_params),
                    timeout=config.LLM_CALL_TIMEOUT,
                )
            except Exception as e:
                raise wrap_llm_error(e, self.provider) from e

        response = await retry_with_backoff(call_llm, max_retries=self.max_retries)

        text_content = ""
        tool_calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_content += block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=names.to_original(block.name),
                    input=dict(block.input or {}),
                ))

        if text_content:
            await emit(on_event, MessageUpdate.from_text(text_content))

        if tool_calls:
            for tool_call in tool_calls:
                await emit(on_event, ToolUse(tool_call=tool_call))
        else:
            await emit(on_event, MessageComplete(content=text_content))
