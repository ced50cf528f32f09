"""Example operation: greet a name after a repository lookup."""

from datetime import UTC, datetime

from stencil.context import RequestContext
from stencil.errors import DataAccessError, OperationError
from stencil.logging import get_logger
from stencil.repository import Repository
from stencil.schemas.example import ExampleOut

logger = get_logger(__name__)


async def process_example(ctx: RequestContext, repository: Repository, name: str) -> ExampleOut:
    """Process an example request.

    Args:
        ctx: The request context. Checked on entry and again before the result
            is built, so a client that went away mid-operation is honored.
        repository: Data-access collaborator.
        name: Name to greet.

    Returns:
        The greeting result.

    Raises:
        ContextError: If the context is done at either checkpoint (unwrapped).
        OperationError: If the repository lookup fails.
    """
    await ctx.check()

    logger.info("processing_example_request", name=name)

    try:
        data = await repository.get_data(ctx, name)
    except DataAccessError as e:
        logger.error("example_data_access_failed", name=name, error=str(e))
        raise OperationError("process_example", e) from e

    await ctx.check()

    result = ExampleOut(
        message=f"Hello, {name}!",
        timestamp=datetime.now(UTC),
        processed=True,
    )

    logger.info("example_request_processed", name=name, data=data)
    return result
