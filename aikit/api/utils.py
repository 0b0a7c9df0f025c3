"""Shared helpers for API routers."""

from fastapi import Request, WebSocket

from aikit.services.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """FastAPI dependency returning the orchestrator built at startup."""
    return request.app.state.orchestrator


def get_ws_orchestrator(websocket: WebSocket) -> Orchestrator:
    return websocket.app.state.orchestrator
