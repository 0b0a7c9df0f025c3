"""OpenAI vendor adapter for streaming Chat Completions with tool calling."""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from openai import AsyncOpenAI

from aikit.adapters.base import AIAdapter, EventCallback, ToolNameMap, emit
from aikit.infra.config import config
from aikit.infra.error_handler import retry_with_backoff, wrap_llm_error
from aikit.models.events import MessageComplete, MessageUpdate, ToolUse
from aikit.models.message import Message, Role, ToolCall
from aikit.models.tool import AITool

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4"


@dataclass
class _PartialToolCall:
    """Tool call fragments accumulated for one stream index."""
    id: str = ""
    name: str = ""
    arguments: str = ""


def build_openai_tools(tools: List[AITool], names: ToolNameMap) -> List[Dict[str, Any]]:
    """
    Convert canonical tool catalog entries to OpenAI function tools.

    Args:
        tools: Canonical tool catalog
        names: Name mapping for this call

    Returns:
        List of OpenAI tool dicts
    """
    return [
        {
            "type": "function",
            "function": {
                "name": names.to_provider(tool.name),
                "description": tool.description,
                "parameters": tool.input_schema or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
    ]


def build_openai_messages(
    messages: List[Message],
    system_prompt: str,
    names: ToolNameMap,
) -> List[Dict[str, Any]]:
    """Convert canonical history to Chat Completions messages."""
    openai_messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for msg in messages:
        if msg.role == Role.TOOL:
            openai_messages.append({
                "role": "tool",
                "content": msg.content or "",
                "tool_call_id": msg.tool_call_id,
            })
        elif msg.role == Role.ASSISTANT and msg.tool_calls:
            openai_messages.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": names.to_provider(tc.name),
                            "arguments": json.dumps(tc.input),
                        },
                    }
                    for tc in msg.tool_calls
                ],
            })
        else:
            openai_messages.append({"role": msg.role.value, "content": msg.content or ""})
    return openai_messages


def parse_tool_arguments(name: str, arguments: str) -> Dict[str, Any]:
    """Parse the concatenated argument string of a streamed tool call."""
    if not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed arguments for tool {name}: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise ValueError(f"Malformed arguments for tool {name}: expected a JSON object")
    return parsed


class OpenAIAdapter(AIAdapter):
    """Streaming adapter for OpenAI and OpenAI-compatible endpoints."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        max_retries: int = 2,
    ) -> None:
        super().__init__(model or DEFAULT_OPENAI_MODEL)
        self.base_url = base_url
        self.max_retries = max_retries
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

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
            "messages": build_openai_messages(messages, system_prompt, names),
            "stream": True,
        }
        if tools:
            request_params["tools"] = build_openai_tools(tools, names)

        async def open_stream():
            try:
                return await asyncio.wait_for(
                    self.client.chat.completions.create(**request_params),
                    timeout=config.LLM_CALL_TIMEOUT,
                )
            except Exception as e:
                raise wrap_llm_error(e, self.provider) from e

        # Only opening the stream is retried; a half-consumed stream is not
        stream = await retry_with_backoff(open_stream, max_retries=self.max_retries)

        accumulated_content = ""
        partials: Dict[int, _PartialToolCall] = {}

        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is None:
                continue

            if delta.content:
                accumulated_content += delta.content
                await emit(on_event, MessageUpdate.from_text(accumulated_content))

            for tool_call_delta in delta.tool_calls or []:
                partial = partials.setdefault(tool_call_delta.index, _PartialToolCall())
                if tool_call_delta.id:
                    partial.id = tool_call_delta.id
                function = tool_call_delta.function
                if function is not None:
                    if function.name:
                        partial.name += function.name
                    if function.arguments:
                        partial.arguments += function.arguments

        if not partials:
            await emit(on_event, MessageComplete(content=accumulated_content))
            return

        # Parse everything before emitting so a bad call fails the whole turn
        tool_calls = []
        for index in sorted(partials):
            partial = partials[index]
            original_name = names.to_original(partial.name)
            tool_calls.append(ToolCall(
                # some compatible servers omit the id
                id=partial.id or f"call_{index}_{uuid.uuid4().hex[:8]}",
                name=original_name,
                input=parse_tool_arguments(original_name, partial.arguments),
            ))

        logger.debug(f"OpenAI turn produced {len(tool_calls)} tool call(s)")
        for tool_call in tool_calls:
            await emit(on_event, ToolUse(tool_call=tool_call))
