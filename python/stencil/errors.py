"""Error definitions.

Two families live here:
- ApiError: HTTP-facing errors with a fixed status and a generic client message.
- ServiceError: orchestration/data-access failures. These carry internal detail
  that is logged server-side and never rendered to clients.

Context cancellation errors (ContextError) are ServiceErrors too; they are
defined in stencil.context next to the RequestContext that raises them.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API."""

    # Server errors
    E_UNHEALTHY = "E_UNHEALTHY"  # 503
    E_NOT_READY = "E_NOT_READY"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNHEALTHY: 503,
    ApiErrorCode.E_NOT_READY: 503,
    ApiErrorCode.E_INTERNAL: 500,
}

# Client-facing message per code. Clients only ever see these strings.
ERROR_CODE_TO_MESSAGE: dict[ApiErrorCode, str] = {
    ApiErrorCode.E_UNHEALTHY: "service unhealthy",
    ApiErrorCode.E_NOT_READY: "service not ready",
    ApiErrorCode.E_INTERNAL: "internal server error",
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Generic client-facing message (derived from code)
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode):
        self.code = code
        self.message = ERROR_CODE_TO_MESSAGE.get(code, "internal server error")
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(self.message)


class ServiceError(Exception):
    """Base exception for failures reported by the orchestration layer."""


class DataAccessError(ServiceError):
    """Raised by the repository when a lookup or probe fails."""


class OperationError(ServiceError):
    """A data-access failure wrapped with the operation that hit it.

    Attributes:
        operation: Name of the orchestration operation (e.g. "process_example").
    """

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        super().__init__(f"{operation}: {cause}")
