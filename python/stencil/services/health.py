"""Liveness and readiness checks.

Both forward to the repository's probes. Further dependency checks (cache,
downstream APIs) belong here, next to the repository call.
"""

from stencil.context import RequestContext
from stencil.errors import DataAccessError, OperationError
from stencil.logging import get_logger
from stencil.repository import Repository

logger = get_logger(__name__)


async def check_health(ctx: RequestContext, repository: Repository) -> None:
    """Check that the service and its backing store are alive.

    Raises:
        ContextError: If the context is already done.
        OperationError: If the repository health probe fails.
    """
    await ctx.check()

    logger.info("checking_health")
    try:
        await repository.check_health(ctx)
    except DataAccessError as e:
        raise OperationError("check_health", e) from e

    await ctx.check()


async def check_ready(ctx: RequestContext, repository: Repository) -> None:
    """Check that the service can take traffic.

    Raises:
        ContextError: If the context is already done.
        OperationError: If the repository readiness probe fails.
    """
    await ctx.check()

    logger.info("checking_readiness")
    try:
        await repository.check_ready(ctx)
    except DataAccessError as e:
        raise OperationError("check_ready", e) from e

    await ctx.check()
