"""Tests for the health and readiness endpoints.

The endpoints:
- Return 200 with a fixed status body while the repository probes pass
- Return 503 with a generic error body when a probe fails
- Are matched exactly (no trailing-slash redirects)
"""

import pytest
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from stencil.app import create_app
from tests.helpers import FailingRepository, find_logs, make_settings


@pytest.fixture
def failing_client():
    """Client whose repository fails every probe."""
    app = create_app(make_settings(), repository=FailingRepository())
    with TestClient(app) as client:
        yield client


class TestHealthEndpoint:
    """Tests for GET /health"""

    def test_health_returns_200(self, client: TestClient):
        """Health endpoint returns 200 OK."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_body(self, client: TestClient):
        """Health endpoint reports healthy."""
        response = client.get("/health")
        assert response.json() == {"status": "healthy"}

    def test_health_content_type_is_json(self, client: TestClient):
        """Health endpoint returns JSON content type."""
        response = client.get("/health")
        assert response.headers["content-type"] == "application/json"

    def test_health_failure_returns_503(self, failing_client: TestClient):
        """A failing liveness probe yields 503 with a generic message."""
        with capture_logs() as logs:
            response = failing_client.get("/health")

        assert response.status_code == 503
        assert response.json() == {"error": "service unhealthy"}
        assert "db-primary" not in response.text

        failures = find_logs(logs, "health_check_failed")
        assert len(failures) == 1
        assert "db-primary" in failures[0]["error"]


class TestReadyEndpoint:
    """Tests for GET /ready"""

    def test_ready_returns_200(self, client: TestClient):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}
        assert response.headers["content-type"] == "application/json"

    def test_ready_failure_returns_503(self, failing_client: TestClient):
        """A failing readiness probe yields 503 with a generic message."""
        response = failing_client.get("/ready")

        assert response.status_code == 503
        assert response.json() == {"error": "service not ready"}


class TestRouting:
    """Unregistered paths and methods fall through to the framework defaults."""

    def test_unknown_path_returns_404(self, client: TestClient):
        response = client.get("/nope")
        assert response.status_code == 404

    def test_trailing_slash_is_not_redirected(self, client: TestClient):
        """/health/ is a different path, not a redirect to /health."""
        response = client.get("/health/", follow_redirects=False)
        assert response.status_code == 404

    def test_wrong_method_returns_405(self, client: TestClient):
        response = client.post("/health")
        assert response.status_code == 405
