"""Per-request cancellation and deadline carrier.

A RequestContext is created by the dispatcher for each request and handed down
explicitly to orchestration and data-access calls. It carries:
- a cancellation signal (explicit cancel() or client disconnect)
- an optional deadline (monotonic clock)
- the request's correlation ID

Child contexts derived with with_cancel() / with_timeout() observe their
parent's cancellation; cancelling a child never affects the parent. The first
cancellation cause wins and is recorded under a lock, so once a context is done
every later read of it (and of its children) sees the same error.

Cancellation is advisory: callers check it at their own checkpoints with
check() or err(). Nothing here interrupts work already running.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable

from stencil.errors import ServiceError
from stencil.logging import get_trace_id

DisconnectProbe = Callable[[], Awaitable[bool]]


class ContextError(ServiceError):
    """Base exception for a done request context."""


class ContextCancelledError(ContextError):
    """The context was cancelled (client disconnect or explicit cancel)."""

    def __init__(self, message: str = "context canceled"):
        super().__init__(message)


class DeadlineExceededError(ContextError):
    """The context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


class RequestContext:
    """Cancellation signal, deadline and correlation ID for one request.

    Args:
        parent: Context this one derives from (cancellation flows down).
        deadline: Absolute time.monotonic() deadline; clamped to the parent's.
        trace_id: Correlation ID; inherited from the parent or the logging context.
        disconnect_probe: Async callable reporting whether the client went away.
    """

    def __init__(
        self,
        parent: RequestContext | None = None,
        deadline: float | None = None,
        trace_id: str | None = None,
        disconnect_probe: DisconnectProbe | None = None,
    ):
        self._parent = parent
        self._lock = threading.Lock()
        self._error: ContextError | None = None
        self._disconnect_probe = disconnect_probe

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

        if trace_id is None:
            trace_id = parent.trace_id if parent is not None else get_trace_id()
        self.trace_id = trace_id

    @classmethod
    def background(cls) -> RequestContext:
        """An empty root context: never cancelled, no deadline."""
        return cls(trace_id="")

    def with_cancel(self) -> RequestContext:
        """Derive a child that can be cancelled independently."""
        return RequestContext(parent=self)

    def with_timeout(self, seconds: float) -> RequestContext:
        """Derive a child whose deadline is `seconds` from now (or the parent's, if sooner)."""
        return RequestContext(parent=self, deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline, floored at 0. None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, error: ContextError | None = None) -> None:
        """Cancel this context and, through it, all derived contexts."""
        self._set_error(error or ContextCancelledError())

    def _set_error(self, error: ContextError) -> ContextError:
        with self._lock:
            if self._error is None:
                self._error = error
            return self._error

    def err(self) -> ContextError | None:
        """Return the reason this context is done, or None while it is live."""
        if self._error is not None:
            return self._error

        if self._parent is not None:
            parent_error = self._parent.err()
            if parent_error is not None:
                return self._set_error(parent_error)

        if self._deadline is not None and time.monotonic() >= self._deadline:
            return self._set_error(DeadlineExceededError())

        return None

    @property
    def done(self) -> bool:
        return self.err() is not None

    async def check(self) -> None:
        """Raise the context error if done, probing for client disconnect first.

        Raises:
            ContextError: If the context is cancelled or past its deadline.
        """
        error = self.err()
        if error is None and await self._client_disconnected():
            self.cancel(ContextCancelledError("client disconnected"))
            error = self.err()
        if error is not None:
            raise error

    async def _client_disconnected(self) -> bool:
        context: RequestContext | None = self
        while context is not None:
            if context._disconnect_probe is not None and await context._disconnect_probe():
                return True
            context = context._parent
        return False
