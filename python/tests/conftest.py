"""Pytest configuration and fixtures for Stencil tests.

Test isolation strategy:
- Settings are built explicitly with .env reading disabled and telemetry off
- Each app gets its own repository (zero latency unless a test needs delay)
- The settings cache is cleared around every test
"""

import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from stencil.app import create_app
from stencil.config import Settings, clear_settings_cache
from stencil.repository import Repository
from tests.helpers import make_settings


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, telemetry disabled."""
    return make_settings()


@pytest.fixture
def repository() -> Repository:
    """Canned repository without simulated latency."""
    return Repository(latency=0)


@pytest.fixture
def app(settings: Settings, repository: Repository) -> FastAPI:
    """Application with the full middleware chain and no tracer."""
    return create_app(settings, repository=repository)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client (runs the app lifespan)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
