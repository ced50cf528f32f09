"""Panic containment middleware.

Any exception escaping the inner chain is a panic: a bug, not a reported
failure. This middleware:
- Logs it at error level with method, path and the request's trace_id
- Sends a generic 500 {"error": "internal server error"} if the response has
  not started yet
- Only logs if the response already started; headers can't be rewritten then

Nothing raises past this boundary, so one request's fault never takes the
server down.
"""

from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from stencil.errors import ApiErrorCode
from stencil.logging import get_logger, get_trace_id
from stencil.middleware.tracing import TRACE_ID_HEADER
from stencil.responses import error_response

logger = get_logger(__name__)


class ResponseStartedSend:
    """Send wrapper that records whether http.response.start went out."""

    def __init__(self, send: Send):
        self._send = send
        self.response_started = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.response_started = True
        await self._send(message)


class RecoveryMiddleware:
    """Pure ASGI middleware converting panics into logged 500 responses."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        guarded_send = ResponseStartedSend(send)
        try:
            await self.app(scope, receive, guarded_send)
        except Exception as e:
            logger.error(
                "panic_recovered",
                error=repr(e),
                method=scope["method"],
                path=scope["path"],
                response_started=guarded_send.response_started,
                exc_info=e,
            )
            if guarded_send.response_started:
                return

            headers = {}
            trace_id = get_trace_id()
            if trace_id:
                headers[TRACE_ID_HEADER] = trace_id
            response = JSONResponse(
                status_code=500,
                content=error_response(ApiErrorCode.E_INTERNAL),
                headers=headers,
            )
            await response(scope, receive, send)
