"""Tests for error types and response envelopes.

Verifies:
- Every error code maps to its HTTP status and generic message
- Error envelopes carry only the generic message
- Service errors wrap their cause with the operation name
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from stencil.errors import (
    ERROR_CODE_TO_MESSAGE,
    ERROR_CODE_TO_STATUS,
    ApiError,
    ApiErrorCode,
    DataAccessError,
    OperationError,
    ServiceError,
)
from stencil.responses import api_error_handler, error_response, success_response
from stencil.schemas import HealthOut


class TestErrorCodes:
    """Every code has a status and a message."""

    @pytest.mark.parametrize("code", list(ApiErrorCode))
    def test_code_is_mapped(self, code: ApiErrorCode):
        assert code in ERROR_CODE_TO_STATUS
        assert code in ERROR_CODE_TO_MESSAGE

    @pytest.mark.parametrize(
        "code,status,message",
        [
            (ApiErrorCode.E_UNHEALTHY, 503, "service unhealthy"),
            (ApiErrorCode.E_NOT_READY, 503, "service not ready"),
            (ApiErrorCode.E_INTERNAL, 500, "internal server error"),
        ],
    )
    def test_api_error_attributes(self, code, status, message):
        error = ApiError(code)

        assert error.status_code == status
        assert error.message == message
        assert str(error) == message


class TestEnvelopes:
    def test_error_response_shape(self):
        """The envelope is a single "error" key."""
        assert error_response(ApiErrorCode.E_INTERNAL) == {"error": "internal server error"}

    def test_success_response_serializes_model(self):
        assert success_response(HealthOut()) == {"status": "healthy"}

    def test_api_error_handler_renders_envelope(self):
        app = FastAPI()
        app.add_exception_handler(ApiError, api_error_handler)

        @app.get("/fail")
        async def fail():
            raise ApiError(ApiErrorCode.E_NOT_READY)

        response = TestClient(app).get("/fail")

        assert response.status_code == 503
        assert response.json() == {"error": "service not ready"}


class TestServiceErrors:
    def test_operation_error_message(self):
        error = OperationError("process_example", DataAccessError("no route to host"))

        assert str(error) == "process_example: no route to host"
        assert error.operation == "process_example"
        assert isinstance(error, ServiceError)

    def test_data_access_error_is_service_error(self):
        assert issubclass(DataAccessError, ServiceError)
