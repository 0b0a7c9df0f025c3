"""Test doubles shared across test modules."""

from types import SimpleNamespace
from typing import List

from aikit.adapters.base import AIAdapter, emit
from aikit.models.events import ErrorEvent, MessageComplete, MessageUpdate, ToolUse
from aikit.models.message import ToolCall


class ScriptedAdapter(AIAdapter):
    """Adapter that replays one scripted turn per call and records its inputs."""

    provider = "scripted"

    def __init__(self, turns: List[list], model: str = "scripted-model") -> None:
        super().__init__(model)
        self.turns = list(turns)
        self.calls = []

    async def _send(self, messages, tools, system_prompt, on_event, names):
        self.calls.append(SimpleNamespace(
            messages=list(messages),
            tools=list(tools),
            system_prompt=system_prompt,
        ))
        if not self.turns:
            raise RuntimeError("No scripted turn left")
        for event in self.turns.pop(0):
            await emit(on_event, event)


def text_turn(text: str) -> list:
    return [MessageUpdate.from_text(text), MessageComplete(content=text)]


def tool_turn(*calls: ToolCall) -> list:
    return [ToolUse(tool_call=call) for call in calls]


def error_turn(message: str) -> list:
    return [ErrorEvent(error=message)]


def text_result(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}
