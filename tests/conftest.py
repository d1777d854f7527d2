import pytest
from fastapi.testclient import TestClient

from app.api import dependencies
from app.config import settings
from app.main import app


@pytest.fixture
def client():
    """API client that runs the app lifespan and drops overrides afterwards."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def unconfigured_providers(monkeypatch):
    """Blank every provider key so the real orchestrator cannot be built."""
    for key in ("openai_api_key", "tavily_api_key", "crunchbase_api_key", "pdl_api_key"):
        monkeypatch.setattr(settings, key, None)
    dependencies.shutdown_orchestrator()
    yield
    dependencies.shutdown_orchestrator()
