"""Canonical conversation message models shared by every provider adapter."""

from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import Optional, Dict, Any, List


class Role(str, Enum):
    """Canonical message roles."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A tool invocation requested by the model during one turn."""
    id: str = Field(..., description="Provider-issued call id, unique per turn")
    name: str = Field(..., description="Original (registered) tool name")
    input: Dict[str, Any] = Field(default_factory=dict, description="Structured arguments")

    model_config = {"frozen": True}


class Message(BaseModel):
    """One entry of the append-only conversation history."""
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = Field(None, alias="toolCalls")
    tool_call_id: Optional[str] = Field(None, alias="toolCallId")

    model_config = {"populate_by_name": True, "frozen": True}

    @model_validator(mode="after")
    def _check_role_shape(self) -> "Message":
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("tool messages must carry tool_call_id")
        if self.tool_calls and self.role != Role.ASSISTANT:
            raise ValueError("only assistant messages may carry tool_calls")
        if self.tool_calls and self.content is not None:
            raise ValueError("assistant messages with tool_calls must have content=None")
        return self

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=text)

    @classmethod
    def assistant_tool_calls(cls, calls: List[ToolCall]) -> "Message":
        return cls(role=Role.ASSISTANT, content=None, tool_calls=list(calls))

    @classmethod
    def tool(cls, tool_call_id: str, text: str) -> "Message":
        return cls(role=Role.TOOL, content=text, tool_call_id=tool_call_id)
