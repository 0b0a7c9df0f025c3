"""Agent API router: provider setup and the interactive prompt stream."""

import asyncio
import logging
import uuid
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from aikit.api.models import (
    ConversationHistoryResponse,
    ExecutePromptFrame,
    InitAgentRequest,
    InitAgentResponse,
)
from aikit.api.utils import get_orchestrator, get_ws_orchestrator
from aikit.infra.error_handler import AdapterNotInitializedError
from aikit.models.events import AIEvent
from aikit.services.orchestrator import DEFAULT_CONVERSATION_ID, Orchestrator, SurfaceSender

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/agent/init", tags=["Agent"], response_model=InitAgentResponse)
async def init_agent(
    request: InitAgentRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Configure the model provider used by every conversation.

    The configuration is persisted and restored on the next startup.

    **Example Request:**
    ```json
    {
        "provider": "anthropic",
        "apiKey": "sk-ant-...",
        "model": "claude-sonnet-4-20250514"
    }
    ```
    """
    adapter = await orchestrator.initialize_adapter(
        request.provider,
        request.api_key,
        model=request.model,
        base_url=request.base_url,
    )
    return InitAgentResponse(provider=adapter.provider, model=adapter.model)


async def _run_prompt(
    orchestrator: Orchestrator,
    send: SurfaceSender,
    frame: Dict[str, Any],
    conversation_id: str,
) -> None:
    """Run one EXECUTE_PROMPT frame and report AGENT_COMPLETE or AGENT_ERROR."""
    try:
        parsed = ExecutePromptFrame.model_validate(frame)
    except PydanticValidationError:
        await send({"type": "AGENT_ERROR", "error": "Missing prompt"})
        return

    async def forward_event(event: AIEvent) -> None:
        await send({"type": "AGENT_EVENT", "event": event.to_wire()})

    try:
        await orchestrator.execute_prompt(
            parsed.prompt,
            forward_event,
            context=parsed.context,
            conversation_id=conversation_id,
        )
    except Exception as e:
        logger.warning(f"Prompt failed: {e}", extra={"conversation_id": conversation_id})
        await send({"type": "AGENT_ERROR", "error": str(e) or "Unknown error"})
        return
    await send({"type": "AGENT_COMPLETE"})


@router.websocket("/agent/stream")
async def agent_stream(
    websocket: WebSocket,
    conversation_id: str = Query(DEFAULT_CONVERSATION_ID),
):
    """
    Interactive surface.

    Frames in: EXECUTE_PROMPT, PERMISSION_RESPONSE, STOP_PROMPT.
    Frames out: AGENT_EVENT, AGENT_COMPLETE, AGENT_ERROR, PERMISSION_REQUEST.
    """
    orchestrator = get_ws_orchestrator(websocket)
    await websocket.accept()

    surface_id = str(uuid.uuid4())
    send_lock = asyncio.Lock()

    async def send(message: Dict[str, Any]) -> None:
        async with send_lock:
            await websocket.send_json(message)

    orchestrator.add_surface(surface_id, send, conversation_id=conversation_id)
    logger.info("Surface connected", extra={"surface_id": surface_id, "conversation_id": conversation_id})

    prompt_task = None
    try:
        while True:
            frame = await websocket.receive_json()
            frame_type = frame.get("type") if isinstance(frame, dict) else None

            if frame_type == "EXECUTE_PROMPT":
                if prompt_task is not None and not prompt_task.done():
                    await send({"type": "AGENT_ERROR", "error": "A prompt is already running"})
                    continue
                prompt_task = asyncio.create_task(_run_prompt(orchestrator, send, frame, conversation_id))
            elif frame_type == "PERMISSION_RESPONSE":
                await orchestrator.handle_message(frame)
            elif frame_type == "STOP_PROMPT":
                await orchestrator.stop_prompt(conversation_id)
            else:
                logger.warning(f"Unknown message type: {frame_type}")
    except WebSocketDisconnect:
        logger.info("Surface disconnected", extra={"surface_id": surface_id})
    finally:
        if prompt_task is not None and not prompt_task.done():
            prompt_task.cancel()
        orchestrator.disconnect_surface(surface_id)


@router.get("/agent/conversations/{conversation_id}/history", tags=["Agent"], response_model=ConversationHistoryResponse)
async def get_history(
    conversation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Committed history of a conversation (completed iterations only)."""
    if orchestrator.adapter is None:
        raise AdapterNotInitializedError()
    loop = orchestrator.find_conversation(conversation_id)
    if loop is None:
        raise HTTPException(status_code=404, detail=f"Unknown conversation: {conversation_id}")
    return ConversationHistoryResponse(
        conversation_id=conversation_id,
        state=loop.state.value,
        messages=[m.model_dump(by_alias=True, exclude_none=True, mode="json") for m in loop.history],
    )
