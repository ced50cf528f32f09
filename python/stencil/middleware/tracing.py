"""Correlation-ID and tracing middleware.

This middleware:
- Extracts or generates the request's correlation ID (trace ID)
- Binds it to the logging context for every log line of the request
- Echoes it in the X-Trace-ID response header
- When a tracer is configured, wraps the request in a SERVER span that
  continues any inbound W3C trace and is tagged with the final status

One strategy is used for the correlation ID: it is the trace ID. With tracing
on, that is the span's trace ID. With tracing off, it is the inbound trace ID
(traceparent, then X-Trace-ID) or a fresh 128-bit random value.

Pure ASGI (not BaseHTTPMiddleware) so the status code and headers can be
observed on the http.response.start message as it is sent.
"""

import re
import secrets
import time
from collections.abc import Mapping

from opentelemetry import trace
from opentelemetry.metrics import Meter
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer, format_trace_id
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from stencil.logging import bind_trace_id, set_request_context

TRACE_ID_HEADER = "X-Trace-ID"

# 128-bit trace ID as 32 hex chars
TRACE_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")
INVALID_TRACE_ID = "0" * 32

ERROR_STATUS_THRESHOLD = 400

_propagator = TraceContextTextMapPropagator()


def is_valid_trace_id(value: str) -> bool:
    """Check if value is 32 hex chars and not all zeros."""
    return bool(TRACE_ID_PATTERN.match(value)) and value != INVALID_TRACE_ID


def generate_trace_id() -> str:
    """Generate a new 128-bit random trace ID."""
    return secrets.token_hex(16)


class TraceCorrelation:
    """The single correlation-ID capability used by the middleware.

    generate_or_extract -> attach_to_context -> attach_to_response.
    """

    header_name = TRACE_ID_HEADER

    def generate_or_extract(self, headers: Mapping[str, str], span: trace.Span | None = None) -> str:
        """Pick the request's trace ID.

        Order: active span, inbound traceparent, inbound X-Trace-ID, new random ID.
        """
        if span is not None:
            span_context = span.get_span_context()
            if span_context.is_valid:
                return format_trace_id(span_context.trace_id)

        remote_context = trace.get_current_span(_propagator.extract(headers)).get_span_context()
        if remote_context.is_valid:
            return format_trace_id(remote_context.trace_id)

        incoming = headers.get(self.header_name.lower())
        if incoming and is_valid_trace_id(incoming):
            return incoming.lower()

        return generate_trace_id()

    def attach_to_context(self, trace_id: str) -> None:
        bind_trace_id(trace_id)

    def attach_to_response(self, message: Message, trace_id: str) -> None:
        """Set the header on an http.response.start message."""
        MutableHeaders(scope=message)[self.header_name] = trace_id


class TracingMiddleware:
    """Pure ASGI middleware binding the trace ID and (optionally) a request span.

    Args:
        app: The ASGI application.
        tracer: OpenTelemetry tracer; None disables spans.
        meter: OpenTelemetry meter; None disables request metrics.
        correlation: Correlation capability (default TraceCorrelation()).
    """

    def __init__(
        self,
        app: ASGIApp,
        tracer: Tracer | None = None,
        meter: Meter | None = None,
        correlation: TraceCorrelation | None = None,
    ):
        self.app = app
        self.tracer = tracer
        self.correlation = correlation or TraceCorrelation()
        self.duration_histogram = None
        if meter is not None:
            self.duration_histogram = meter.create_histogram(
                "http.server.request.duration",
                unit="s",
                description="Duration of HTTP server requests.",
            )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        set_request_context(path=scope["path"], method=scope["method"])

        if self.tracer is None:
            trace_id = self.correlation.generate_or_extract(headers)
            self.correlation.attach_to_context(trace_id)
            await self.app(scope, receive, self._sender(send, trace_id, {}))
            return

        await self._call_with_span(scope, receive, send, headers)

    async def _call_with_span(self, scope: Scope, receive: Receive, send: Send, headers: Headers) -> None:
        method = scope["method"]
        path = scope["path"]
        start_time = time.monotonic()
        captured: dict = {}

        with self.tracer.start_as_current_span(
            f"{method} {path}",
            context=_propagator.extract(headers),
            kind=SpanKind.SERVER,
            attributes=_request_attributes(scope, headers),
        ) as span:
            trace_id = self.correlation.generate_or_extract(headers, span)
            self.correlation.attach_to_context(trace_id)
            try:
                await self.app(scope, receive, self._sender(send, trace_id, captured))
            except Exception:
                # The panic guard answers 500 unless a response already started
                status_code = captured.get("status", 500)
                span.set_attribute("http.response.status_code", status_code)
                self._record_duration(method, scope, status_code, start_time)
                raise

            status_code = captured.get("status", 200)
            span.set_attribute("http.response.status_code", status_code)
            if status_code >= ERROR_STATUS_THRESHOLD:
                span.set_status(Status(StatusCode.ERROR))
            else:
                span.set_status(Status(StatusCode.OK))
            self._record_duration(method, scope, status_code, start_time)

    def _sender(self, send: Send, trace_id: str, captured: dict) -> Send:
        async def send_with_trace_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
                self.correlation.attach_to_response(message, trace_id)
            await send(message)

        return send_with_trace_id

    def _record_duration(self, method: str, scope: Scope, status_code: int, start_time: float) -> None:
        if self.duration_histogram is None:
            return
        route = scope.get("route")
        self.duration_histogram.record(
            time.monotonic() - start_time,
            attributes={
                "http.request.method": method,
                "http.route": getattr(route, "path", scope["path"]),
                "http.response.status_code": status_code,
            },
        )


def _request_attributes(scope: Scope, headers: Headers) -> dict:
    attributes = {
        "http.request.method": scope["method"],
        "url.path": scope["path"],
        "server.address": headers.get("host", ""),
        "user_agent.original": headers.get("user-agent", ""),
    }
    client = scope.get("client")
    if client:
        attributes["client.address"] = client[0]
    return attributes
