"""Health check endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from stencil.api.deps import get_repository, get_request_context
from stencil.context import RequestContext
from stencil.errors import ApiError, ApiErrorCode, ServiceError
from stencil.logging import get_logger
from stencil.repository import Repository
from stencil.responses import success_response
from stencil.schemas.health import HealthOut, ReadyOut
from stencil.services import health as health_service

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    repository: Annotated[Repository, Depends(get_repository)],
) -> dict:
    """Liveness check endpoint.

    Returns 200 while the process and its backing store are alive, 503 otherwise.
    """
    try:
        await health_service.check_health(ctx, repository)
    except ServiceError as e:
        logger.error("health_check_failed", error=str(e))
        raise ApiError(ApiErrorCode.E_UNHEALTHY) from e

    return success_response(HealthOut())


@router.get("/ready")
async def readiness_check(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    repository: Annotated[Repository, Depends(get_repository)],
) -> dict:
    """Readiness check endpoint.

    Returns 200 when the service can take traffic, 503 otherwise.
    """
    try:
        await health_service.check_ready(ctx, repository)
    except ServiceError as e:
        logger.error("readiness_check_failed", error=str(e))
        raise ApiError(ApiErrorCode.E_NOT_READY) from e

    return success_response(ReadyOut())
