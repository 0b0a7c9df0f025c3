"""Gemini vendor adapter for generateContent with function calling."""

import asyncio
import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import List, Dict, Any, Optional
import google.generativeai as genai

from aikit.adapters.base import AIAdapter, EventCallback, ToolNameMap, emit
from aikit.infra.config import config
from aikit.infra.error_handler import retry_with_backoff, wrap_llm_error
from aikit.models.events import MessageComplete, MessageUpdate, ToolUse
from aikit.models.message import Message, Role, ToolCall
from aikit.models.tool import AITool

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-pro"

# Subset of JSON Schema understood by Gemini function declarations
_GEMINI_SCHEMA_KEYS = {"type", "format", "description", "nullable", "enum", "properties", "required", "items"}


def sanitize_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Strip JSON Schema keys Gemini rejects and upper-case type names."""
    cleaned: Dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _GEMINI_SCHEMA_KEYS:
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {name: sanitize_schema(prop) for name, prop in value.items() if isinstance(prop, dict)}
        elif key == "items" and isinstance(value, dict):
            cleaned[key] = sanitize_schema(value)
        elif key == "type" and isinstance(value, str):
            cleaned[key] = value.upper()
        else:
            cleaned[key] = value
    return cleaned


def build_gemini_tools(tools: List[AITool], names: ToolNameMap) -> List[Dict[str, Any]]:
    """Convert canonical tool catalog entries to one Gemini function_declarations tool."""
    declarations = []
    for tool in tools:
        declaration: Dict[str, Any] = {
            "name": names.to_provider(tool.name),
            "description": tool.description,
        }
        parameters = sanitize_schema(tool.input_schema or {})
        # Gemini rejects OBJECT schemas without properties
        if parameters.get("properties"):
            declaration["parameters"] = parameters
        declarations.append(declaration)
    return [{"function_declarations": declarations}] if declarations else []


def build_gemini_contents(messages: List[Message], names: ToolNameMap) -> List[Dict[str, Any]]:
    """
    Convert canonical history to Gemini contents.

    Gemini keys function responses by function name rather than call id, so
    the name is recovered from the assistant turn that issued the call.
    """
    call_names: Dict[str, str] = {}
    contents: List[Dict[str, Any]] = []
    for msg in messages:
        if msg.role == Role.TOOL:
            part = {
                "function_response": {
                    "name": names.to_provider(call_names.get(msg.tool_call_id, "")),
                    "response": {"content": msg.content or ""},
                }
            }
            previous = contents[-1] if contents else None
            if (
                previous is not None
                and previous["role"] == "user"
                and all("function_response" in p for p in previous["parts"])
            ):
                previous["parts"].append(part)
            else:
                contents.append({"role": "user", "parts": [part]})
        elif msg.role == Role.ASSISTANT and msg.tool_calls:
            parts = []
            for tc in msg.tool_calls:
                call_names[tc.id] = tc.name
                parts.append({"function_call": {"name": names.to_provider(tc.name), "args": tc.input}})
            contents.append({"role": "model", "parts": parts})
        elif msg.role == Role.ASSISTANT:
            contents.append({"role": "model", "parts": [{"text": msg.content or ""}]})
        else:
            contents.append({"role": "user", "parts": [{"text": msg.content or ""}]})
    return contents


def _to_plain(value: Any) -> Any:
    """Convert proto map/repeated composites to plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_to_plain(item) for item in value]
    return value


class GeminiAdapter(AIAdapter):
    """Single-shot adapter for Google Gemini models."""

    provider = "google"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_retries: int = 2,
    ) -> None:
        super().__init__(model or DEFAULT_GEMINI_MODEL)
        self.max_retries = max_retries
        genai.configure(api_key=api_key)

    async def _send(
        self,
        messages: List[Message],
        tools: List[AITool],
        system_prompt: str,
        on_event: EventCallback,
        names: ToolNameMap,
    ) -> None:
        gemini_tools = build_gemini_tools(tools, names)
        model = genai.GenerativeModel(
            model_name=self.model,
            system_instruction=system_prompt or None,
            tools=gemini_tools or None,
        )
        contents = build_gemini_contents(messages, names)

        async def call_llm():
            try:
                return await asyncio.wait_for(
                    model.generate_content_async(contents),
                    timeout=config.LLM_CALL_TIMEOUT,
                )
            except Exception as e:
                raise wrap_llm_error(e, self.provider) from e

        response = await retry_with_backoff(call_llm, max_retries=self.max_retries)

        if not response.candidates:
            raise ValueError("No response from Gemini")

        text_content = ""
        tool_calls: List[ToolCall] = []
        for part in response.candidates[0].content.parts:
            function_call = getattr(part, "function_call", None)
            if function_call is not None and function_call.name:
                tool_calls.append(ToolCall(
                    # Gemini issues no call ids
                    id=f"call_{len(tool_calls)}_{uuid.uuid4().hex[:8]}",
                    name=names.to_original(function_call.name),
                    input=_to_plain(function_call.args) or {},
                ))
            elif getattr(part, "text", None):
                text_content += part.text

        if text_content:
            await emit(on_event, MessageUpdate.from_text(text_content))

        if tool_calls:
            for tool_call in tool_calls:
                await emit(on_event, ToolUse(tool_call=tool_call))
        else:
            await emit(on_event, MessageComplete(content=text_content))
