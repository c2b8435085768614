"""Prometheus metrics for the generation-to-preview pipeline."""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

REQUEST_LATENCY = Histogram(
    "vibecode_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

GENERATIONS = Counter(
    "vibecode_generations_total",
    "Generation turns by type and outcome",
    labelnames=("type", "outcome"),
)

STORE_DEGRADATIONS = Counter(
    "vibecode_conversation_store_degradations_total",
    "Conversation store operations that fell back instead of failing the turn",
    labelnames=("operation",),
)

PREVIEW_RESPONSES = Counter(
    "vibecode_preview_responses_total",
    "Preview responses by status code",
    labelnames=("status",),
)


def sanitize_path(path: str) -> str:
    """Collapse a request path to its first segment to keep label cardinality low."""
    if not path:
        return "/"
    segs = path.split("?")[0].split("/")
    if len(segs) > 1:
        return "/" + segs[1]
    return path


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        REQUEST_LATENCY.labels(
            method=request.method,
            path=sanitize_path(request.url.path),
            status=str(response.status_code),
        ).observe(time.perf_counter() - start)
        return response

    return middleware
