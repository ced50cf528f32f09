"""FastAPI application creation and configuration.

This module creates the FastAPI application instance, registers the ApiError
handler, the routes and the middleware chain.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- TracingMiddleware is added FIRST so it runs LAST (innermost, next to routes)
- AccessLogMiddleware is added LAST so it runs FIRST (outermost)

Actual execution order per request:
1. AccessLogMiddleware (starts timer, captures status)
2. RecoveryMiddleware (contains panics, tracks whether the response started)
3. TracingMiddleware (binds trace_id, opens span, sets X-Trace-ID)
4. Route handler
5. TracingMiddleware (tags span with final status)
6. RecoveryMiddleware (500 envelope if the handler raised)
7. AccessLogMiddleware (logs http_request, clears logging context)

Repository Lifecycle:
- The repository is created before the app and stored in app.state
- It is closed by the lifespan at shutdown
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry.metrics import Meter
from opentelemetry.trace import Tracer

from stencil.api.routes import create_api_router
from stencil.config import Settings, get_settings
from stencil.errors import ApiError
from stencil.logging import get_logger
from stencil.middleware import AccessLogMiddleware, RecoveryMiddleware, TracingMiddleware
from stencil.repository import Repository
from stencil.responses import api_error_handler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup and close the repository on shutdown."""
    logger.info("app_started", environment=app.state.settings.environment)

    yield

    await app.state.repository.close()
    logger.info("app_stopped")


def create_app(
    settings: Settings | None = None,
    repository: Repository | None = None,
    tracer: Tracer | None = None,
    meter: Meter | None = None,
    log_requests: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use (default: get_settings()).
        repository: Data-access collaborator (default: canned Repository).
        tracer: OpenTelemetry tracer for request spans; None disables spans.
        meter: OpenTelemetry meter for request metrics; None disables metrics.
        log_requests: Whether to emit one access log entry per request.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Stencil",
        description="Template HTTP service",
        version=settings.otel_service_version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.repository = repository or Repository()

    app.add_exception_handler(ApiError, api_error_handler)

    app.include_router(create_api_router())

    # Registered innermost first
    app.add_middleware(TracingMiddleware, tracer=tracer, meter=meter)
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(AccessLogMiddleware, log_requests=log_requests)

    return app
