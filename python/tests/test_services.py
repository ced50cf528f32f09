"""Tests for the orchestration layer.

Verifies:
- Context is checked before any repository call
- Deadlines reached mid-operation surface as DeadlineExceededError
- Repository failures are wrapped with the operation name
- Health operations log their intent at info level
"""

import time

import pytest
from structlog.testing import capture_logs

from stencil.context import ContextCancelledError, DeadlineExceededError, RequestContext
from stencil.errors import DataAccessError, OperationError
from stencil.repository import Repository
from stencil.services.example import process_example
from stencil.services.health import check_health, check_ready
from tests.helpers import CountingRepository, FailingRepository


class TestProcessExample:
    @pytest.mark.asyncio
    async def test_returns_greeting(self):
        ctx = RequestContext.background().with_timeout(5)

        result = await process_example(ctx, Repository(latency=0), "Ada")

        assert result.message == "Hello, Ada!"
        assert result.processed is True
        assert result.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_cancelled_context_skips_repository(self):
        repository = CountingRepository()
        ctx = RequestContext.background().with_cancel()
        ctx.cancel()

        with pytest.raises(ContextCancelledError):
            await process_example(ctx, repository, "Ada")

        assert repository.get_data_calls == 0

    @pytest.mark.asyncio
    async def test_deadline_hit_during_lookup(self):
        repository = CountingRepository(latency=0.2)
        ctx = RequestContext.background().with_timeout(0.05)

        with pytest.raises(DeadlineExceededError):
            await process_example(ctx, repository, "Ada")

        assert repository.get_data_calls == 1

    @pytest.mark.asyncio
    async def test_slow_lookup_stops_at_deadline(self):
        """A lookup slower than the deadline gives up when the deadline passes."""
        ctx = RequestContext.background().with_timeout(0.05)
        started = time.monotonic()

        with pytest.raises(DeadlineExceededError):
            await process_example(ctx, CountingRepository(latency=5), "Ada")

        assert time.monotonic() - started < 1

    @pytest.mark.asyncio
    async def test_data_access_error_is_wrapped(self):
        ctx = RequestContext.background().with_timeout(5)

        with pytest.raises(OperationError) as exc_info:
            await process_example(ctx, FailingRepository("connection refused"), "Ada")

        assert exc_info.value.operation == "process_example"
        assert str(exc_info.value) == "process_example: connection refused"
        assert isinstance(exc_info.value.__cause__, DataAccessError)


class TestHealthChecks:
    @pytest.mark.asyncio
    async def test_health_and_ready_pass(self):
        ctx = RequestContext.background().with_timeout(5)

        await check_health(ctx, Repository(latency=0))
        await check_ready(ctx, Repository(latency=0))

    @pytest.mark.asyncio
    async def test_health_failure_is_wrapped(self):
        ctx = RequestContext.background().with_timeout(5)

        with pytest.raises(OperationError, match="^check_health: "):
            await check_health(ctx, FailingRepository())

    @pytest.mark.asyncio
    async def test_ready_failure_is_wrapped(self):
        ctx = RequestContext.background().with_timeout(5)

        with pytest.raises(OperationError, match="^check_ready: "):
            await check_ready(ctx, FailingRepository())

    @pytest.mark.asyncio
    async def test_cancelled_context_fails_health(self):
        ctx = RequestContext.background().with_cancel()
        ctx.cancel()

        with pytest.raises(ContextCancelledError):
            await check_health(ctx, Repository(latency=0))

    @pytest.mark.asyncio
    async def test_checks_log_intent_at_info(self):
        ctx = RequestContext.background().with_timeout(5)

        with capture_logs() as logs:
            await check_health(ctx, Repository(latency=0))
            await check_ready(ctx, Repository(latency=0))

        intents = [(e["event"], e["log_level"]) for e in logs if e["event"].startswith("checking_")]
        assert intents == [("checking_health", "info"), ("checking_readiness", "info")]
