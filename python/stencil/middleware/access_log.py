"""Access logging middleware.

Outermost decorator of the chain. Emits one "http_request" entry per request
after the inner chain returns, with method, path, final status, duration,
remote address and (through the logging context) the trace_id.

It also owns the request's logging context: everything bound by inner layers
is cleared once the entry is written.
"""

import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from stencil.logging import clear_request_context, get_logger, get_trace_id

logger = get_logger(__name__)


class AccessLogMiddleware:
    """Pure ASGI middleware logging each request after its response.

    Args:
        app: The ASGI application.
        log_requests: If False, only manage the logging context.
    """

    def __init__(self, app: ASGIApp, log_requests: bool = True):
        self.app = app
        self.log_requests = log_requests

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.monotonic()
        # Status defaults to 200 when the app never sends a start message
        status_code = 200

        async def send_capturing_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_capturing_status)
        finally:
            if self.log_requests:
                duration_ms = (time.monotonic() - start_time) * 1000
                client = scope.get("client")
                logger.info(
                    "http_request",
                    method=scope["method"],
                    path=scope["path"],
                    status=status_code,
                    duration_ms=round(duration_ms, 2),
                    remote_addr=f"{client[0]}:{client[1]}" if client else None,
                    trace_id=get_trace_id(),
                )
            clear_request_context()
