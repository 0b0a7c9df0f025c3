"""Health check API router."""

from fastapi import APIRouter, Depends

from aikit import __version__
from aikit.api.utils import get_orchestrator
from aikit.infra.metrics import get_metrics_response
from aikit.services.orchestrator import Orchestrator

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check():
    """Combined health check endpoint."""
    return {
        "status": "ok",
        "service": "aikit-orchestrator",
        "version": __version__,
    }


@router.get("/health/live", tags=["Health"])
async def liveness_probe():
    """Liveness probe - indicates if the process is running."""
    return {"status": "alive"}


@router.get("/health/ready", tags=["Health"])
async def readiness_probe(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Readiness probe - reports whether a model provider is configured."""
    if orchestrator.adapter is None:
        return {"status": "not_configured"}
    return {
        "status": "ready",
        "provider": orchestrator.adapter.provider,
        "model": orchestrator.adapter.model,
    }


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
