"""Permission decisions, checks and the prompt request/response messages."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from aikit.models.tool import ToolDescriptor


class PermissionDecision(str, Enum):
    """Durable decision stored for a tool (optionally per domain)."""
    ALWAYS_ALLOW = "always_allow"
    ALWAYS_DENY = "always_deny"


class PermissionScope(str, Enum):
    """Breadth of a remembered decision."""
    GLOBAL = "global"
    DOMAIN = "domain"


class ToolContext(BaseModel):
    """Page context a tool runs against; only supplied to domain-aware tools."""
    url: Optional[str] = None
    tab_id: Optional[int] = Field(None, alias="tabId")

    model_config = {"populate_by_name": True, "frozen": True}


class PermissionCheck(BaseModel):
    """Outcome of a permission lookup."""
    allowed: bool
    requires_prompt: bool = Field(..., alias="requiresPrompt")

    model_config = {"populate_by_name": True, "frozen": True}


class StoredPermission(BaseModel):
    """One row of the persisted decision table."""
    tool_name: str = Field(..., alias="toolName")
    domain: Optional[str] = None
    decision: PermissionDecision

    model_config = {"populate_by_name": True}


class PermissionRequestMessage(BaseModel):
    """Pushed to every interactive surface when a tool needs confirmation."""
    type: str = "PERMISSION_REQUEST"
    request_id: str = Field(..., alias="requestId")
    tool_name: str = Field(..., alias="toolName")
    tool_descriptor: ToolDescriptor = Field(..., alias="toolDescriptor")
    params: Dict[str, Any] = Field(default_factory=dict)
    context: ToolContext = Field(default_factory=ToolContext)

    model_config = {"populate_by_name": True}


class PermissionResponseMessage(BaseModel):
    """Sent back by exactly one surface to settle a request."""
    type: str = "PERMISSION_RESPONSE"
    request_id: str = Field(..., alias="requestId")
    granted: bool
    remember: bool = False
    scope: Optional[PermissionScope] = None

    model_config = {"populate_by_name": True}
