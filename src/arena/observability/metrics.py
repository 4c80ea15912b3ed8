from __future__ import annotations

"""Prometheus metrics for the arena FastAPI backend.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters and histograms for the generation pipeline.
"""

import logging
import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("arena.metrics")

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "arena_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

# Remote generation calls take seconds to tens of seconds
GENERATION_LATENCY = Histogram(
    "arena_generation_latency_seconds",
    "Latency of one backend generation attempt in seconds",
    labelnames=("provider",),
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0, 120.0),
)

GENERATION_ATTEMPTS = Counter(
    "arena_generation_attempts_total",
    "Backend generation attempts by outcome",
    labelnames=("provider", "outcome"),
)

GENERATION_JOBS = Counter(
    "arena_generation_jobs_total",
    "Generation jobs that reached a terminal state",
    labelnames=("outcome",),
)

DEMOS_CREATED = Counter(
    "arena_demos_created_total",
    "Demos created via the API",
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /demos/{id}) to a coarse label.

    Keeps the first segment, and the second one too under the /api prefix.
    """
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    if segs[0] == "api" and len(segs) > 1:
        return f"/api/{segs[1]}"
    return "/" + segs[0]


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        try:
            REQUEST_LATENCY.labels(
                method=request.method,
                path=sanitize_path(request.url.path),
                status=str(response.status_code),
            ).observe(elapsed)
        except Exception:
            # Never block the request due to metrics
            logger.debug("Could not record request latency", exc_info=True)
        return response

    return middleware
