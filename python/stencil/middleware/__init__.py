"""Middleware modules for the Stencil API.

Chain order, outermost first:
    AccessLogMiddleware -> RecoveryMiddleware -> TracingMiddleware -> routes
"""

from stencil.middleware.access_log import AccessLogMiddleware
from stencil.middleware.recovery import RecoveryMiddleware
from stencil.middleware.tracing import TRACE_ID_HEADER, TraceCorrelation, TracingMiddleware

__all__ = [
    "AccessLogMiddleware",
    "RecoveryMiddleware",
    "TRACE_ID_HEADER",
    "TraceCorrelation",
    "TracingMiddleware",
]
