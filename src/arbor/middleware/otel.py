"""OpenTelemetry tracing and metrics middleware.

Creates HTTP server spans and metrics with semantic conventions for each request.

Install with: uv add "arbor[otel]"
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from arbor.http import Next, Request, RequestHandler, Response

try:
    from opentelemetry import metrics, trace
    from opentelemetry.propagate import extract
    from opentelemetry.trace import (
        SpanKind,
        StatusCode,
        TracerProvider,
    )
except ImportError as e:
    msg = (
        "OpenTelemetry middleware requires the 'otel' extra. "
        "Install with: uv add 'arbor[otel]'"
    )
    raise ImportError(msg) from e

from arbor.rsgi import HTTPProtocolProxy
from arbor.tree import http_route


_DURATION_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.075,
    0.1,
    0.25,
    0.5,
    0.75,
    1.0,
    2.5,
    5.0,
    7.5,
    10.0,
)


def otel(
    *,
    tracer_provider: TracerProvider | None = None,
    meter_provider: metrics.MeterProvider | None = None,
) -> RequestHandler:
    """Create OpenTelemetry tracing and metrics middleware.

    Creates a server span and metrics with HTTP semantic conventions for each
    request that reaches it. Register it first (`app.use(otel())`) so the span
    covers the rest of the chain.

    Extracts trace context from incoming request headers (e.g. ``traceparent``)
    for distributed tracing. Only depends on ``opentelemetry-api``; users bring
    their own SDK and exporters.

    Metrics emitted:
        - ``http.server.request.duration`` (histogram, seconds)
        - ``http.server.active_requests`` (up-down counter)

    Args:
        tracer_provider: Optional TracerProvider. If None, uses the global provider.
        meter_provider: Optional MeterProvider. If None, uses the global provider.
    """
    tracer = trace.get_tracer(
        "arbor",
        tracer_provider=tracer_provider,
    )
    meter = metrics.get_meter(
        "arbor",
        meter_provider=meter_provider,
    )
    duration_histogram = meter.create_histogram(
        "http.server.request.duration",
        unit="s",
        description="Duration of HTTP server requests.",
        explicit_bucket_boundaries_advisory=_DURATION_BUCKETS,
    )
    active_requests_counter = meter.create_up_down_counter(
        "http.server.active_requests",
        unit="{request}",
        description="Number of active HTTP server requests.",
    )

    async def middleware(request: Request, response: Response, next: Next) -> None:
        scope = request.scope

        # Extract propagated context from request headers
        ctx = extract(request.headers)

        # Set by the app before the chain runs
        route = http_route.get("")

        method = request.method.value
        span_name = f"{method} {route}" if route else method

        # Span attributes (stable HTTP semantic conventions)
        attributes: dict[str, str | int] = {
            "http.request.method": method,
            "url.path": request.path,
            "url.scheme": scope.scheme,
            "network.protocol.version": scope.http_version,
            "server.address": scope.server,
            "client.address": scope.client,
        }
        if route:
            attributes["http.route"] = route
        if scope.query_string:
            attributes["url.query"] = scope.query_string
        user_agent = request.headers.get("user-agent")
        if user_agent is not None:
            attributes["user_agent.original"] = user_agent

        # Metric attributes (required + conditionally required by semconv)
        active_attrs: dict[str, str | int] = {
            "http.request.method": method,
            "url.scheme": scope.scheme,
        }
        if route:
            active_attrs["http.route"] = route

        active_requests_counter.add(1, active_attrs)
        start = time.perf_counter()

        with tracer.start_as_current_span(
            span_name,
            context=ctx,
            kind=SpanKind.SERVER,
            attributes=attributes,
            record_exception=True,
            set_status_on_exception=True,
        ) as span:
            recorder = HTTPProtocolProxy(response.proto)
            response.proto = recorder
            try:
                await next()
            finally:
                duration = time.perf_counter() - start
                active_requests_counter.add(-1, active_attrs)
                duration_attrs = dict(active_attrs)
                if recorder.status is not None:
                    span.set_attribute("http.response.status_code", recorder.status)
                    duration_attrs["http.response.status_code"] = recorder.status
                    if recorder.status >= 500:
                        span.set_status(StatusCode.ERROR)
                duration_histogram.record(duration, duration_attrs)

    return middleware
