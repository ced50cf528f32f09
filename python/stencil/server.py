"""Server handle: listener socket + uvicorn server + in-flight tracking.

ServerHandle owns the process's one listening socket. The lifecycle manager
binds it on the main thread (so a bad port fails startup immediately), then
calls serve() on a listener thread. stop() asks uvicorn to close the listener
and blocks until in-flight requests finish or the drain timeout passes.

Timeout mapping:
- READ_TIMEOUT: RequestTracker bounds each wait for request body data
- WRITE_TIMEOUT: deadline of the per-request RequestContext (stencil.api.deps)
- IDLE_TIMEOUT: uvicorn keep-alive timeout
- SHUTDOWN_TIMEOUT: drain bound here. uvicorn gets a graceful shutdown timeout
  rounded up past it, so only stop() decides whether the drain succeeded
"""

import asyncio
import math
import socket
import threading

import uvicorn
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from stencil.config import Settings
from stencil.logging import get_logger

logger = get_logger(__name__)


class RequestTracker:
    """Pure ASGI wrapper counting in-flight HTTP requests.

    The count is guarded by a threading.Condition: requests run on the event
    loop's thread while the lifecycle manager waits for drain on the main
    thread.

    Args:
        app: The ASGI application.
        read_timeout: Max seconds to wait for each chunk of the request body.
            Expiry is delivered to the app as http.disconnect. None disables it.
    """

    def __init__(self, app: ASGIApp, read_timeout: float | None = None):
        self.app = app
        self.read_timeout = read_timeout
        self._active = 0
        self._cancelled = 0
        self._idle = threading.Condition()

    @property
    def active(self) -> int:
        with self._idle:
            return self._active

    @property
    def cancelled(self) -> int:
        """Requests that ended by cancellation instead of returning."""
        with self._idle:
            return self._cancelled

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        with self._idle:
            self._active += 1
        try:
            if self.read_timeout is not None:
                receive = self._bounded_receive(receive)
            await self.app(scope, receive, send)
        except asyncio.CancelledError:
            with self._idle:
                self._cancelled += 1
            raise
        finally:
            with self._idle:
                self._active -= 1
                if self._active == 0:
                    self._idle.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no request is in flight.

        Returns:
            True once idle, False if the timeout passed first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._active == 0, timeout=timeout)

    def _bounded_receive(self, receive: Receive) -> Receive:
        body_complete = False
        timeout = self.read_timeout

        async def receive_with_timeout() -> Message:
            nonlocal body_complete
            if body_complete:
                return await receive()

            try:
                message = await asyncio.wait_for(receive(), timeout=timeout)
            except TimeoutError:
                logger.warning("request_read_timeout", timeout_s=timeout)
                body_complete = True
                return {"type": "http.disconnect"}

            if message["type"] != "http.request" or not message.get("more_body", False):
                body_complete = True
            return message

        return receive_with_timeout


class ServerHandle:
    """Listener socket, composed application and uvicorn server.

    Args:
        settings: Host, port and timeouts.
        app: The composed ASGI application (middleware chain + routes).
    """

    def __init__(self, settings: Settings, app: ASGIApp):
        self.settings = settings
        self.tracker = RequestTracker(app, read_timeout=settings.read_timeout.total_seconds())
        self.config = uvicorn.Config(
            self.tracker,
            host=settings.host,
            port=settings.port,
            timeout_keep_alive=max(1, int(settings.idle_timeout.total_seconds())),
            timeout_graceful_shutdown=math.ceil(settings.shutdown_timeout.total_seconds()) + 1,
            log_config=None,
            access_log=False,
            lifespan="on",
        )
        self.server = uvicorn.Server(self.config)
        self._socket: socket.socket | None = None

    @property
    def port(self) -> int:
        """Bound port (useful when PORT=0)."""
        if self._socket is None:
            raise RuntimeError("server socket is not bound")
        return self._socket.getsockname()[1]

    @property
    def address(self) -> str:
        return f"{self.settings.host}:{self.port}"

    @property
    def started(self) -> bool:
        return self.server.started

    def bind(self) -> socket.socket:
        """Create and bind the listener socket.

        Raises:
            OSError: If the address cannot be bound.
        """
        family = socket.AF_INET6 if ":" in self.settings.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.settings.host, self.settings.port))
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        self._socket = sock
        return sock

    def serve(self) -> None:
        """Run the uvicorn server on the bound socket. Blocks until it exits.

        Must be called off the main thread: uvicorn then leaves signal
        handling to the lifecycle manager.
        """
        if self._socket is None:
            raise RuntimeError("server socket is not bound")
        self.server.run(sockets=[self._socket])

    def stop(self, timeout: float) -> bool:
        """Stop accepting connections and wait for in-flight requests.

        Args:
            timeout: Drain bound in seconds.

        Returns:
            True if every in-flight request finished within the timeout
            without being cancelled.
        """
        cancelled_before = self.tracker.cancelled
        self.server.should_exit = True
        if not self.tracker.wait_idle(timeout):
            logger.error(
                "drain_timeout_exceeded",
                timeout_s=timeout,
                in_flight=self.tracker.active,
            )
            return False

        cancelled = self.tracker.cancelled - cancelled_before
        if cancelled:
            logger.error("drain_requests_cancelled", timeout_s=timeout, cancelled=cancelled)
            return False
        return True

    def close(self) -> None:
        """Close the listener socket if uvicorn has not already."""
        if self._socket is not None:
            self._socket.close()
