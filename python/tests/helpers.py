"""Test helpers: settings builder and repository doubles.

Provides:
- make_settings() for Settings with test defaults + overrides
- Repository doubles that count calls, fail or panic
- Log lookup and polling helpers
"""

import time
from typing import Any

from stencil.config import Settings
from stencil.context import RequestContext
from stencil.errors import DataAccessError
from stencil.repository import Repository


def make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides (by env name)."""
    defaults: dict[str, Any] = {
        "OTEL_ENABLED": False,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class CountingRepository(Repository):
    """Repository that counts get_data calls."""

    def __init__(self, latency: float = 0):
        super().__init__(latency=latency)
        self.get_data_calls = 0

    async def get_data(self, ctx: RequestContext, key: str) -> dict[str, Any]:
        self.get_data_calls += 1
        return await super().get_data(ctx, key)


class FailingRepository(Repository):
    """Repository whose every operation reports a data-access failure."""

    def __init__(self, detail: str = "connection refused: db-primary:5432"):
        super().__init__(latency=0)
        self.detail = detail

    async def get_data(self, ctx: RequestContext, key: str) -> dict[str, Any]:
        raise DataAccessError(self.detail)

    async def check_health(self, ctx: RequestContext) -> None:
        raise DataAccessError(self.detail)

    async def check_ready(self, ctx: RequestContext) -> None:
        raise DataAccessError(self.detail)


class PanickingRepository(Repository):
    """Repository with a bug: get_data raises an unexpected exception."""

    def __init__(self):
        super().__init__(latency=0)

    async def get_data(self, ctx: RequestContext, key: str) -> dict[str, Any]:
        raise RuntimeError("boom")


def find_logs(logs: list[dict], event: str) -> list[dict]:
    """Return captured log entries with the given event name."""
    return [entry for entry in logs if entry.get("event") == event]


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll predicate until it is truthy or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())
