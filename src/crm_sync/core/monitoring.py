"""Prometheus metrics for HTTP requests, remote calls and sync outcomes.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- remote_calls_total: attempt outcomes recorded by ResilientClient
- sync_records_total: per-record outcomes recorded by the orchestrators
- get_metrics_response(): Response for the /metrics route
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0, 300.0),
)

# ── Sync Metrics ─────────────────────────────────────────────────────────────

remote_calls_total = Counter(
    "crm_remote_calls_total",
    "Remote call attempts by client and outcome",
    ["client", "outcome"],
)

sync_records_total = Counter(
    "crm_sync_records_total",
    "Records processed by sync runs",
    ["run", "entity", "outcome"],
)

sync_run_duration_seconds = Histogram(
    "crm_sync_run_duration_seconds",
    "Duration of complete sync runs in seconds",
    ["run", "status"],
    buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0),
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


def get_metrics_response() -> Response:
    """Render the default registry in the Prometheus text format."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
