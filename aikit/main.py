"""FastAPI orchestrator main application."""

import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from aikit import __version__
from aikit.infra.config import config
from aikit.infra.error_handler import (
    AdapterNotInitializedError,
    UnsupportedProviderError,
    ValidationError,
)
from aikit.infra.logging import app_logger
from aikit.infra.storage import create_store
from aikit.services.orchestrator import Orchestrator


def build_orchestrator() -> Orchestrator:
    """Create the orchestrator and its collaborators from configuration."""
    return Orchestrator(store=create_store(config.AIKIT_STORE_PATH))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    app_logger.info("Application starting up")
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator()
    if await app.state.orchestrator.restore_adapter():
        app_logger.info("Restored AI adapter from stored configuration")
    app.state.orchestrator.start_sweeper(config.PERMISSION_SWEEP_INTERVAL)

    yield

    # Shutdown
    app_logger.info("Application shutting down")
    await app.state.orchestrator.shutdown()


app = FastAPI(
    title="AIKit Orchestrator API",
    description="""
    AIKit Orchestrator lets a language model drive tools contributed by independent
    owners, with a per-tool, per-site permission model.

    ## Features

    - **Tools**: Owners register and unregister tools; the model sees one flat catalog
    - **Agent**: Configure Anthropic, OpenAI or Google models and stream prompts over a WebSocket
    - **Permissions**: Remembered allow/deny decisions, globally or per domain, and auto-approve
    """,
    version=__version__,
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Tools",
            "description": "Register, unregister and list tools",
        },
        {
            "name": "Agent",
            "description": "Provider configuration and the interactive prompt stream",
        },
        {
            "name": "Permissions",
            "description": "Stored decisions, auto-approve and permission prompt answers",
        },
        {
            "name": "Health",
            "description": "Health check and monitoring endpoints",
        },
    ],
)

# Setup middleware
from aikit.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware, setup_cors

app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestLoggingMiddleware)
setup_cors(app)

# Import and register routers
from aikit.api.routers import (
    agent,
    health,
    permissions,
    tools,
)

app.include_router(tools.router)
app.include_router(agent.router)
app.include_router(permissions.router)
app.include_router(health.router)


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(UnsupportedProviderError)
@app.exception_handler(ValidationError)
async def bad_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(AdapterNotInitializedError)
async def adapter_not_initialized_handler(request: Request, exc: AdapterNotInitializedError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    error_id = str(uuid.uuid4())
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error. Error ID: {error_id}"},
    )


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower(),
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )


if __name__ == "__main__":
    run()
