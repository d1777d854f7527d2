import json
from pathlib import Path

import pytest

from app.models.queue import Priority, QueueItemType
from app.models.workflow import WorkflowItemStatus
from pipelines import orchestrator as orchestrator_module
from pipelines.extraction import ExtractionError
from pipelines.orchestrator import WorkflowConfig
from pipelines.queue import InMemoryVerificationQueue
from tests.helpers.fakes import ACME_TEXT, StubCompanySource
from tests.helpers.workflow import BROKEN_TEXT, THIN_TEXT, ZETA_TEXT
from tests.helpers.workflow import build_orchestrator as _build


def test_batch_partitions_results_and_keeps_counts_consistent():
    orchestrator = _build()

    result = orchestrator.execute_complete_workflow([ACME_TEXT, ZETA_TEXT, BROKEN_TEXT])

    assert result.success is True
    assert result.processed_count == 2
    assert result.verified_count == 1
    assert result.manual_review_count == 1
    assert result.processed_count == result.verified_count + result.manual_review_count == len(result.results)
    assert [item.status for item in result.results] == [
        WorkflowItemStatus.COMPLETE,
        WorkflowItemStatus.MANUAL_REVIEW_REQUIRED,
    ]
    complete, manual = result.results
    assert complete.profile is not None and complete.profile.is_complete
    assert manual.analysis.final_data.company_name == "Zeta Shield"
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Article 3:")


def test_manual_review_items_are_queued_with_reason_and_priority():
    orchestrator = _build()

    result = orchestrator.execute_complete_workflow([ZETA_TEXT, THIN_TEXT])

    queue = orchestrator.get_verification_queue()
    assert len(queue) == 2
    assert all(item.type is QueueItemType.DATA_VERIFICATION for item in queue)
    by_company = {item.company_name: item for item in queue}
    assert by_company["Orbit Labs"].priority is Priority.HIGH
    assert by_company["Zeta Shield"].priority is Priority.MEDIUM
    assert by_company["Zeta Shield"].reason == "Insufficient sources: 1 (minimum 2)"
    assert queue[0].company_name == "Orbit Labs"
    assert {item.queue_item_id for item in result.results} == {item.id for item in queue}


def test_orchestrator_threshold_can_be_stricter_than_verifier():
    orchestrator = _build(config=WorkflowConfig(confidence_threshold=0.99))

    result = orchestrator.execute_complete_workflow([ACME_TEXT])

    assert result.verified_count == 0
    assert result.manual_review_count == 1
    item = orchestrator.get_verification_queue()[0]
    assert item.reason.startswith("Confidence 0.95 below threshold")


def test_batch_is_truncated_to_max_size():
    orchestrator = _build(config=WorkflowConfig(max_batch_size=1))

    result = orchestrator.execute_complete_workflow([ZETA_TEXT, ACME_TEXT, THIN_TEXT])

    assert result.processed_count == 1
    assert orchestrator.extractor.processed == 1


def test_failed_profile_queues_profiling_task():
    orchestrator = _build(company_source=StubCompanySource(error=KeyError("corrupt record")))

    result = orchestrator.execute_complete_workflow([ACME_TEXT])

    assert result.verified_count == 1
    assert result.results[0].profile is None
    queue = orchestrator.get_verification_queue()
    assert len(queue) == 1
    assert queue[0].type is QueueItemType.COMPANY_PROFILING
    assert queue[0].priority is Priority.MEDIUM
    assert queue[0].reason == "profiling failed"
    assert queue[0].linkedin_url == "https://linkedin.com/company/acme-cyber"


class _CrashingProfiler:
    queue = InMemoryVerificationQueue()

    def profile_company(self, company_name):
        raise RuntimeError("profiler crashed")

    def status(self):
        return {"name": "profiler", "status": "down"}


def test_profiler_crash_keeps_verified_item_and_queues_profiling():
    orchestrator = _build(profiler=_CrashingProfiler())

    result = orchestrator.execute_complete_workflow([ACME_TEXT, ZETA_TEXT])

    assert result.success is True
    assert result.verified_count == 1
    assert result.manual_review_count == 1
    assert result.processed_count == len(result.results) == 2
    verified = result.results[0]
    assert verified.status is WorkflowItemStatus.COMPLETE
    assert verified.analysis.final_data.company_name == "Acme Cyber"
    assert verified.profile is None
    assert result.errors == ["Profiling failed for Acme Cyber: profiler crashed"]
    queued = {item.id: item for item in orchestrator.get_verification_queue()}
    profiling_task = queued[verified.queue_item_id]
    assert profiling_task.type is QueueItemType.COMPANY_PROFILING
    assert profiling_task.reason == "profiling failed"
    assert profiling_task.linkedin_url == "https://linkedin.com/company/acme-cyber"


def test_unexpected_failure_marks_run_unsuccessful(monkeypatch):
    orchestrator = _build()

    def _explode(drafts, *, pacer=None):
        raise RuntimeError("verifier crashed")

    monkeypatch.setattr(orchestrator.verifier, "analyze_batch", _explode)

    result = orchestrator.execute_complete_workflow([ACME_TEXT, BROKEN_TEXT])

    assert result.success is False
    assert result.processed_count == 0
    assert result.errors[0].startswith("Article 2:")
    assert result.errors[-1] == "Workflow failed: verifier crashed"


def test_complete_verification_task_removes_once():
    orchestrator = _build()
    orchestrator.execute_complete_workflow([ZETA_TEXT])
    item_id = orchestrator.get_verification_queue()[0].id

    assert orchestrator.complete_verification_task(item_id, {"funding_stage": "Seed Round"}) is True
    assert orchestrator.complete_verification_task(item_id) is False
    assert orchestrator.get_verification_queue() == []
    assert orchestrator._metrics.last_gauge("queue.depth") == 0


def test_workflow_stats_break_down_queue_and_agents():
    orchestrator = _build(company_source=StubCompanySource(None))
    orchestrator.execute_complete_workflow([ACME_TEXT, ZETA_TEXT])

    stats = orchestrator.get_workflow_stats()

    assert stats["by_type"] == {"data_verification": 1, "company_profiling": 4}
    assert stats["queue_length"] == 5
    assert stats["profiling_tasks"] == 4
    assert stats["by_priority"] == {"high": 2, "medium": 3, "low": 0}
    assert stats["agents"]["extractor"]["processed"] == 2
    assert stats["agents"]["verifier"]["analyzed"] == 2
    assert stats["agents"]["confidence_threshold"] == 0.75


def test_process_single_article():
    orchestrator = _build()

    item = orchestrator.process_single_article(ACME_TEXT)

    assert item.status is WorkflowItemStatus.COMPLETE
    assert item.profile is not None

    with pytest.raises(ExtractionError):
        orchestrator.process_single_article(BROKEN_TEXT)


def test_cli_run_pipeline_writes_result_and_queue(tmp_path: Path):
    input_path = tmp_path / "articles.txt"
    input_path.write_text(f"{ACME_TEXT}\n\n{ZETA_TEXT}\n", encoding="utf-8")
    output_path = tmp_path / "out" / "result.json"

    result = orchestrator_module.run_pipeline(
        input_path=input_path,
        output_path=output_path,
        orchestrator=_build(),
    )

    payload = json.loads(output_path.read_text(encoding="utf-8"))
    assert result.processed_count == 2
    assert payload["result"]["verified_count"] == 1
    assert len(payload["verification_queue"]) == 1


def test_load_articles_rejects_non_string_json(tmp_path: Path):
    path = tmp_path / "articles.json"
    path.write_text(json.dumps([1, 2]), encoding="utf-8")

    with pytest.raises(ValueError):
        orchestrator_module.load_articles(path)


def test_main_returns_error_code_for_missing_input(tmp_path: Path):
    assert orchestrator_module.main(["--input", str(tmp_path / "missing.json")]) == 1
