"""Canonical AI events emitted by every provider adapter.

Events form a closed tagged union discriminated on ``type``; consumers
dispatch on the concrete class instead of probing for fields.
"""

from typing import Annotated, Any, Dict, List, Literal, Union
from pydantic import BaseModel, Field, TypeAdapter

from aikit.models.message import ToolCall
from aikit.models.tool import ToolExecutionResult


class _EventBase(BaseModel):
    model_config = {"populate_by_name": True, "frozen": True}

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the camelCase field names used on the wire."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class MessageStart(_EventBase):
    type: Literal["message_start"] = "message_start"


class MessageUpdate(_EventBase):
    """Cumulative content seen so far in the turn (replace, don't append)."""
    type: Literal["message_update"] = "message_update"
    content: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "MessageUpdate":
        return cls(content=[{"type": "text", "text": text}])


class ToolUse(_EventBase):
    type: Literal["tool_use"] = "tool_use"
    tool_call: ToolCall = Field(..., alias="toolCall")


class ToolResult(_EventBase):
    type: Literal["tool_result"] = "tool_result"
    tool_call: ToolCall = Field(..., alias="toolCall")
    result: ToolExecutionResult


class MessageComplete(_EventBase):
    type: Literal["message_complete"] = "message_complete"
    content: str = ""


class ErrorEvent(_EventBase):
    type: Literal["error"] = "error"
    error: str


AIEvent = Annotated[
    Union[MessageStart, MessageUpdate, ToolUse, ToolResult, MessageComplete, ErrorEvent],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(AIEvent)


def parse_event(data: Dict[str, Any]) -> AIEvent:
    """Parse a wire dict back into its event class."""
    return _event_adapter.validate_python(data)
