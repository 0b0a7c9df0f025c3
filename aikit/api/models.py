"""API request/response models."""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from aikit.models.permission import PermissionScope, StoredPermission, ToolContext
from aikit.models.tool import ToolDescriptor


# ============================================================================
# Tools Models
# ============================================================================

class RegisterToolsRequest(BaseModel):
    """Request model for registering an owner's tools."""
    tools: List[ToolDescriptor] = Field(..., description="Tools exposed by the owner")
    endpoint: Optional[str] = Field(
        None,
        description="URL that receives TOOL_EXECUTE requests for these tools",
        example="http://127.0.0.1:9001/execute",
    )


class RegisteredToolResponse(BaseModel):
    """Response model for one registered tool."""
    name: str
    extension_id: str = Field(..., alias="extensionId")
    descriptor: ToolDescriptor

    model_config = {"populate_by_name": True}


class ToolListResponse(BaseModel):
    """Response model for listing tools."""
    tools: List[RegisteredToolResponse]


class SuccessResponse(BaseModel):
    """Generic acknowledgement."""
    success: bool = True
    count: Optional[int] = None


# ============================================================================
# Agent Models
# ============================================================================

class InitAgentRequest(BaseModel):
    """Request model for configuring the model provider."""
    provider: str = Field(..., example="anthropic", description="anthropic, openai or google")
    api_key: str = Field(..., alias="apiKey", min_length=1)
    model: Optional[str] = Field(None, example="claude-sonnet-4-20250514")
    base_url: Optional[str] = Field(None, alias="baseURL")

    model_config = {"populate_by_name": True}


class InitAgentResponse(BaseModel):
    success: bool = True
    provider: str
    model: str


class ConversationHistoryResponse(BaseModel):
    """Committed messages of one conversation."""
    conversation_id: str
    state: str
    messages: List[Dict[str, Any]]


class ExecutePromptFrame(BaseModel):
    """EXECUTE_PROMPT frame received on the agent stream."""
    type: str = "EXECUTE_PROMPT"
    prompt: str = Field(..., min_length=1)
    context: Optional[ToolContext] = None


# ============================================================================
# Permissions Models
# ============================================================================

class PermissionListResponse(BaseModel):
    """Response model for stored permission decisions."""
    permissions: List[StoredPermission]


class PermissionResponseRequest(BaseModel):
    """Answer to a PERMISSION_REQUEST submitted over HTTP."""
    request_id: str = Field(..., alias="requestId")
    granted: bool
    remember: bool = False
    scope: Optional[PermissionScope] = None

    model_config = {"populate_by_name": True}


class AutoApproveRequest(BaseModel):
    enabled: bool


class AutoApproveResponse(BaseModel):
    enabled: bool


class PermissionResponseAck(BaseModel):
    success: bool = True
    resolved: bool = Field(..., description="False when the request was unknown or already settled")
