"""Permissions API router."""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from aikit.api.models import (
    AutoApproveRequest,
    AutoApproveResponse,
    PermissionListResponse,
    PermissionResponseAck,
    PermissionResponseRequest,
    SuccessResponse,
)
from aikit.api.utils import get_orchestrator
from aikit.models.permission import PermissionResponseMessage
from aikit.services.orchestrator import Orchestrator

router = APIRouter()


@router.get("/permissions", tags=["Permissions"], response_model=PermissionListResponse, response_model_by_alias=True)
async def list_permissions(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """List every stored decision, global and per domain."""
    return PermissionListResponse(permissions=await orchestrator.get_permissions())


@router.post("/permissions/allow-all", tags=["Permissions"], response_model=SuccessResponse)
async def allow_all_tools(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Store a global always_allow for every currently registered tool."""
    count = await orchestrator.allow_all_tools()
    return SuccessResponse(count=count)


@router.get("/permissions/auto-approve", tags=["Permissions"], response_model=AutoApproveResponse)
async def get_auto_approve(orchestrator: Orchestrator = Depends(get_orchestrator)):
    return AutoApproveResponse(enabled=await orchestrator.get_auto_approve())


@router.put("/permissions/auto-approve", tags=["Permissions"], response_model=AutoApproveResponse)
async def set_auto_approve(
    request: AutoApproveRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Enable or disable auto-approve.

    While enabled, tools without a stored decision run without prompting.
    Stored denials still apply.
    """
    await orchestrator.set_auto_approve(request.enabled)
    return AutoApproveResponse(enabled=request.enabled)


@router.post("/permissions/responses", tags=["Permissions"], response_model=PermissionResponseAck)
async def respond_to_permission_request(
    request: PermissionResponseRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Answer a pending permission request. Unknown or stale ids are ignored."""
    resolved = await orchestrator.handle_permission_response(PermissionResponseMessage(
        request_id=request.request_id,
        granted=request.granted,
        remember=request.remember,
        scope=request.scope,
    ))
    return PermissionResponseAck(resolved=resolved)


@router.delete("/permissions/{tool_name}", tags=["Permissions"], response_model=SuccessResponse)
async def revoke_permission(
    tool_name: str,
    domain: Optional[str] = Query(None, description="Revoke the decision for this domain only"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Forget a stored decision (global unless a domain is given)."""
    removed = await orchestrator.revoke_permission(tool_name, domain)
    return SuccessResponse(count=1 if removed else 0)
