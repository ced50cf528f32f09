"""Data-access layer.

The repository answers lookups and health probes. This implementation returns
canned data; a real one would hold a database pool or API client and run its
connectivity checks in check_health() / check_ready().

Contract for every method:
- Honor the request context: a done context raises its ContextError before
  any work starts.
- Report failures by raising DataAccessError.
"""

import asyncio
from typing import Any

from stencil.context import RequestContext
from stencil.logging import get_logger

logger = get_logger(__name__)

# Simulated lookup latency for the example operation
DEFAULT_LATENCY_S = 0.1


class Repository:
    """Canned-data repository.

    Args:
        latency: Seconds get_data() sleeps to stand in for I/O, cut short at
            the context deadline.
    """

    def __init__(self, latency: float = DEFAULT_LATENCY_S):
        self.latency = latency

    async def get_data(self, ctx: RequestContext, key: str) -> dict[str, Any]:
        """Fetch the record for `key`."""
        await ctx.check()

        # SELECT * FROM examples WHERE id = :key
        delay = self.latency
        remaining = ctx.remaining()
        if remaining is not None:
            # Never sleep past the deadline
            delay = min(delay, remaining)
        if delay > 0:
            await asyncio.sleep(delay)

        logger.debug("data_fetched", key=key)
        return {"id": key, "status": "active"}

    async def check_health(self, ctx: RequestContext) -> None:
        """Liveness probe for the backing store. No-op placeholder."""

    async def check_ready(self, ctx: RequestContext) -> None:
        """Readiness probe for the backing store. No-op placeholder."""

    async def close(self) -> None:
        """Release backing-store resources at shutdown."""
        logger.info("repository_closed")
