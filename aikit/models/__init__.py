from .message import Message, Role, ToolCall
from .tool import AITool, ToolDescriptor, ToolExecutionResult, ToolRegistration
from .events import (
    AIEvent,
    ErrorEvent,
    MessageComplete,
    MessageStart,
    MessageUpdate,
    ToolResult,
    ToolUse,
    parse_event,
)
from .permission import (
    PermissionCheck,
    PermissionDecision,
    PermissionRequestMessage,
    PermissionResponseMessage,
    PermissionScope,
    StoredPermission,
    ToolContext,
)

__all__ = [
    "Message",
    "Role",
    "ToolCall",
    "AITool",
    "ToolDescriptor",
    "ToolExecutionResult",
    "ToolRegistration",
    "AIEvent",
    "ErrorEvent",
    "MessageComplete",
    "MessageStart",
    "MessageUpdate",
    "ToolResult",
    "ToolUse",
    "parse_event",
    "PermissionCheck",
    "PermissionDecision",
    "PermissionRequestMessage",
    "PermissionResponseMessage",
    "PermissionScope",
    "StoredPermission",
    "ToolContext",
]
