from __future__ import annotations

from contextlib import contextmanager

from app.api.dependencies import get_orchestrator
from app.config import settings
from app.main import app
from pipelines.orchestrator import WorkflowOrchestrator
from tests.helpers.fakes import ACME_TEXT
from tests.helpers.workflow import BROKEN_TEXT, ZETA_TEXT
from tests.helpers.workflow import build_orchestrator as _build


@contextmanager
def _override_orchestrator(orchestrator: WorkflowOrchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_orchestrator, None)


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_run_workflow_and_list_queue(client):
    orchestrator = _build()
    with _override_orchestrator(orchestrator):
        response = client.post("/api/workflow/run", json={"texts": [ACME_TEXT, ZETA_TEXT]})
        queue_response = client.get("/api/verification-queue")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["verified_count"] == 1
    assert body["manual_review_count"] == 1
    assert body["results"][0]["analysis"]["verified"] is True
    assert queue_response.status_code == 200
    assert [item["company_name"] for item in queue_response.json()] == ["Zeta Shield"]


def test_run_workflow_rejects_empty_batch(client):
    with _override_orchestrator(_build()):
        response = client.post("/api/workflow/run", json={"texts": []})

    assert response.status_code == 422


def test_process_article_maps_extraction_failure_to_bad_gateway(client):
    with _override_orchestrator(_build()):
        ok = client.post("/api/articles/process", json={"text": ACME_TEXT})
        failed = client.post("/api/articles/process", json={"text": BROKEN_TEXT})

    assert ok.status_code == 200
    assert ok.json()["status"] == "complete"
    assert failed.status_code == 502


def test_complete_queue_item_and_unknown_item(client):
    orchestrator = _build()
    orchestrator.execute_complete_workflow([ZETA_TEXT])
    item_id = orchestrator.get_verification_queue()[0].id
    with _override_orchestrator(orchestrator):
        done = client.post(
            f"/api/verification-queue/{item_id}/complete",
            json={"updated_data": {"funding_stage": "Seed Round"}},
        )
        missing = client.post(f"/api/verification-queue/{item_id}/complete")
        stats = client.get("/api/workflow/stats")

    assert done.status_code == 200
    assert done.json() == {"id": item_id, "completed": True}
    assert missing.status_code == 404
    assert stats.json()["queue_length"] == 0


def test_readiness_requires_inference_and_search_keys(client, unconfigured_providers):
    response = client.get("/health/ready")

    assert response.status_code == 503


def test_readiness_reports_configured_providers(client, unconfigured_providers, monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "tavily_api_key", "tvly-test")

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["providers"] == {
        "inference": True,
        "search": True,
        "crunchbase": False,
        "peopledatalabs": False,
    }


def test_routes_are_unavailable_without_provider_keys(client, unconfigured_providers):
    response = client.get("/api/workflow/stats")

    assert response.status_code == 503
    assert "OPENAI_API_KEY" in response.json()["detail"]
