"""Prometheus metrics helpers and middleware."""

from __future__ import annotations

from time import perf_counter
from typing import Tuple

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


_HTTP_REQUEST_COUNT = Counter(
    "storybook_http_requests_total",
    "Total HTTP requests processed by service",
    labelnames=("service", "method", "route", "status"),
)

_HTTP_REQUEST_LATENCY = Histogram(
    "storybook_http_request_duration_seconds",
    "Latency of HTTP requests",
    labelnames=("service", "method", "route"),
)

_STAGE_DURATION = Histogram(
    "storybook_stage_duration_seconds",
    "Duration of generation stages",
    labelnames=("service", "stage"),
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200),
)

_STAGE_COUNTER = Counter(
    "storybook_stage_runs_total",
    "Count of stage executions by outcome",
    labelnames=("service", "stage", "status"),
)

_GENERATOR_LATENCY = Histogram(
    "storybook_generator_latency_seconds",
    "Latency of external generator calls",
    labelnames=("service", "capability", "generator"),
)

_GENERATOR_TOKENS = Counter(
    "storybook_generator_tokens_total",
    "Token usage reported by text generators",
    labelnames=("service", "generator", "token_type"),
)

_RETRY_ATTEMPTS = Counter(
    "storybook_retry_attempts_total",
    "Retries scheduled after a failed generator call",
    labelnames=("label", "reason"),
)

_BATCH_UNITS = Gauge(
    "storybook_batch_units",
    "Units processed by the running batch, by outcome",
    labelnames=("batch_id", "outcome"),
)

_STARTUP_FLAGS: set[Tuple[str, int]] = set()


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for FastAPI services."""

    def __init__(self, app: FastAPI, service_name: str) -> None:
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start

        route_template = request.url.path
        route = request.scope.get("route")
        if route and getattr(route, "path", None):
            route_template = route.path  # type: ignore[assignment]

        status = getattr(response, "status_code", 500)
        _HTTP_REQUEST_COUNT.labels(self.service_name, request.method, route_template, str(status)).inc()
        _HTTP_REQUEST_LATENCY.labels(self.service_name, request.method, route_template).observe(elapsed)
        return response


def setup_fastapi_metrics(app: FastAPI, service_name: str, endpoint: str = "/metrics") -> None:
    """Register Prometheus middleware and metrics endpoint for a FastAPI app."""

    if getattr(app.state, "metrics_configured", False):
        return

    app.add_middleware(PrometheusMiddleware, service_name=service_name)

    @app.get(endpoint, include_in_schema=False)
    async def _metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.state.metrics_configured = True


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose Prometheus metrics on a standalone HTTP server."""

    key = (addr, port)
    if key in _STARTUP_FLAGS:
        return
    start_http_server(port, addr=addr)
    _STARTUP_FLAGS.add(key)


def observe_stage_duration(
    stage: str,
    duration_seconds: float,
    *,
    service_name: str,
    status: str = "success",
) -> None:
    """Record metrics for stage execution duration and outcome."""

    _STAGE_DURATION.labels(service_name, stage).observe(max(duration_seconds, 0.0))
    _STAGE_COUNTER.labels(service_name, stage, status).inc()


def observe_generator_call(
    *,
    capability: str,
    generator: str,
    service_name: str,
    latency_ms: float | None,
    prompt_tokens: int | None = None,
    completion_tokens: int | None = None,
) -> None:
    """Capture latency and, for text generators, token usage of one call."""

    if isinstance(latency_ms, (int, float)) and latency_ms >= 0:
        _GENERATOR_LATENCY.labels(service_name, capability, generator).observe(latency_ms / 1000)
    if prompt_tokens:
        _GENERATOR_TOKENS.labels(service_name, generator, "prompt").inc(prompt_tokens)
    if completion_tokens:
        _GENERATOR_TOKENS.labels(service_name, generator, "completion").inc(completion_tokens)


def record_retry(label: str, *, rate_limited: bool) -> None:
    _RETRY_ATTEMPTS.labels(label, "rate_limit" if rate_limited else "error").inc()


def record_batch_progress(
    batch_id: str, *, completed: int, failed: int, skipped: int = 0
) -> None:
    """Mirror a batch's counters into gauges so long runs can be watched."""

    _BATCH_UNITS.labels(batch_id, "completed").set(completed)
    _BATCH_UNITS.labels(batch_id, "failed").set(failed)
    _BATCH_UNITS.labels(batch_id, "skipped").set(skipped)
