"""Example business endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from stencil.api.deps import get_repository, get_request_context
from stencil.context import RequestContext
from stencil.errors import ApiError, ApiErrorCode, ServiceError
from stencil.logging import get_logger
from stencil.repository import Repository
from stencil.responses import success_response
from stencil.schemas.example import ExampleOut
from stencil.services.example import process_example

logger = get_logger(__name__)

router = APIRouter()

DEFAULT_NAME = "World"


@router.get("/api/example")
async def get_example(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    repository: Annotated[Repository, Depends(get_repository)],
    name: str | None = None,
) -> dict:
    """Greet `name` (default "World").

    Failures are logged with detail and returned as a generic 500 envelope.
    """
    name = name or DEFAULT_NAME

    try:
        result = await process_example(ctx, repository, name)
    except ServiceError as e:
        logger.error("service_error", error=str(e), name=name)
        raise ApiError(ApiErrorCode.E_INTERNAL) from e

    return success_response(result)
