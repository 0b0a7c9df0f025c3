"""Tool registration API router."""

from fastapi import APIRouter, Depends

from aikit.api.models import (
    RegisterToolsRequest,
    RegisteredToolResponse,
    SuccessResponse,
    ToolListResponse,
)
from aikit.api.utils import get_orchestrator
from aikit.services.orchestrator import Orchestrator

router = APIRouter()


@router.post("/owners/{owner_id}/tools", tags=["Tools"], response_model=SuccessResponse)
async def register_tools(
    owner_id: str,
    request: RegisterToolsRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Register (or re-register) the tools of an owner.

    Tools with a name that is already registered are replaced, even when a
    different owner registered them.

    **Example Request:**
    ```json
    {
        "endpoint": "http://127.0.0.1:9001/execute",
        "tools": [
            {
                "name": "nav.click",
                "label": "Click",
                "description": "Click an element on the page",
                "parameters": {"type": "object", "properties": {"selector": {"type": "string"}}}
            }
        ]
    }
    ```
    """
    count = await orchestrator.register_tools(owner_id, request.tools, request.endpoint)
    return SuccessResponse(count=count)


@router.delete("/owners/{owner_id}/tools", tags=["Tools"], response_model=SuccessResponse)
async def unregister_tools(
    owner_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Remove every tool registered by an owner."""
    count = await orchestrator.unregister_tools(owner_id)
    return SuccessResponse(count=count)


@router.get("/tools", tags=["Tools"], response_model=ToolListResponse, response_model_by_alias=True)
async def list_tools(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """List registered tools with their owners."""
    return ToolListResponse(tools=[
        RegisteredToolResponse(
            name=registration.descriptor.name,
            extension_id=registration.owner_id,
            descriptor=registration.descriptor,
        )
        for registration in orchestrator.registry.list_registrations()
    ])
