"""FastAPI dependencies for route handlers.

Provides the shared repository and the per-request RequestContext.
"""

from collections.abc import AsyncIterator

from fastapi import Request

from stencil.config import Settings
from stencil.context import RequestContext
from stencil.repository import Repository

__all__ = ["get_repository", "get_request_context", "get_settings_from_app"]


def get_settings_from_app(request: Request) -> Settings:
    """Get the Settings the app was created with."""
    return request.app.state.settings


def get_repository(request: Request) -> Repository:
    """Get the shared repository from app state.

    The repository is built once at startup and closed by the app lifespan.
    """
    return request.app.state.repository


async def get_request_context(request: Request) -> AsyncIterator[RequestContext]:
    """Create the request's context.

    The root context is cancelled when the client disconnects; the context
    handed to the route derives from it with the write timeout as deadline.
    Both are cancelled once the route returns.
    """
    settings = get_settings_from_app(request)

    root = RequestContext(disconnect_probe=request.is_disconnected)
    ctx = root.with_timeout(settings.write_timeout.total_seconds())
    try:
        yield ctx
    finally:
        root.cancel()
