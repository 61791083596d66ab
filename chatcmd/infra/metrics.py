"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Request metrics
request_count = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

# Tool metrics
tool_calls_total = Counter(
    "tool_calls_total",
    "Total tool calls",
    ["tool_name", "status"],  # status: success | failure | clarification | error
)

tool_call_duration = Histogram(
    "tool_call_duration_seconds",
    "Tool call duration in seconds",
    ["tool_name"],
)

chain_executions_total = Counter(
    "chain_executions_total",
    "Total tool chain executions",
    ["outcome"],  # completed | short_circuited | clarification
)

clarifications_total = Counter(
    "clarifications_total",
    "Total clarification requests returned to callers",
    ["clarification_type"],
)

# LLM metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM API calls",
    ["provider", "model", "status"],
)

llm_call_duration = Histogram(
    "llm_call_duration_seconds",
    "LLM API call duration in seconds",
    ["provider", "model"],
)

# Retrieval metrics
semantic_search_duration = Histogram(
    "semantic_search_duration_seconds",
    "Semantic search duration in seconds",
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
