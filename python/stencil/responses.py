"""Response envelope helpers and exception handlers.

Every handler-produced response uses one of two shapes:
- Success: the operation's schema, e.g. {"status": "healthy"}
- Error: {"error": "<generic message>"}

Error bodies carry only the generic message for their code. Internal detail is
logged with the request's trace_id and never sent to clients.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from stencil.errors import ERROR_CODE_TO_MESSAGE, ApiError, ApiErrorCode
from stencil.schemas.envelope import ErrorOut


def success_response(data: BaseModel) -> dict[str, Any]:
    """Serialize a success payload to its JSON-ready dict."""
    return data.model_dump(mode="json")


def error_response(code: ApiErrorCode) -> dict[str, Any]:
    """Create an error envelope for the given code.

    Args:
        code: The error code enum value.

    Returns:
        Dict with a single "error" key holding the generic message.
    """
    return ErrorOut(error=ERROR_CODE_TO_MESSAGE[code]).model_dump()


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Handle ApiError exceptions and return the error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code),
    )
