"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
"""

from fastapi import APIRouter

from stencil.api.routes.example import router as example_router
from stencil.api.routes.health import router as health_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        APIRouter with the health, readiness and example routes registered.
    """
    api_router = APIRouter(redirect_slashes=False)
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(example_router, tags=["example"])
    return api_router


__all__ = ["create_api_router"]
