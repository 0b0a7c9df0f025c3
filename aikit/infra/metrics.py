"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Request metrics
request_count = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

# LLM metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM turns",
    ["provider", "status"],
)

llm_call_duration = Histogram(
    "llm_call_duration_seconds",
    "LLM turn duration in seconds",
    ["provider"],
)

# Tool metrics
tool_calls_total = Counter(
    "tool_calls_total",
    "Total tool calls",
    ["tool_name", "status"],
)

tool_call_duration = Histogram(
    "tool_call_duration_seconds",
    "Tool call duration in seconds",
    ["tool_name"],
)

# Permission metrics
permission_prompts_total = Counter(
    "permission_prompts_total",
    "Total interactive permission prompts",
    ["outcome"],  # granted | denied | timeout | abandoned
)

pending_permission_requests = Gauge(
    "pending_permission_requests",
    "Number of permission requests awaiting a response",
)

# Registry / surfaces
registered_tools = Gauge(
    "registered_tools",
    "Number of tools currently registered",
)

connected_surfaces = Gauge(
    "connected_surfaces",
    "Number of connected interactive surfaces",
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
