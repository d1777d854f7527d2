import json

import pytest

from app.clients.inference import InferenceError, InferenceRateLimitError
from pipelines.extraction import ExtractionError, FundingExtractor, build_draft, parse_entities
from tests.helpers.fakes import ACME_ENTITIES, ACME_TEXT, StubInference, no_sleep
from tests.helpers.metrics_stub import StubMetrics


def _extractor(inference, metrics=None):
    return FundingExtractor(inference, sleep=no_sleep, metrics_reporter=metrics or StubMetrics())


def test_process_maps_entities_to_normalized_draft():
    inference = StubInference([(ACME_TEXT, json.dumps(ACME_ENTITIES))])
    metrics = StubMetrics()

    draft = _extractor(inference, metrics).process(ACME_TEXT)

    assert draft.company_name == "Acme Cyber"
    assert draft.amount == 12_000_000
    assert draft.funding_stage == "Series A"
    assert draft.lead_investor == "Foo Ventures"
    assert draft.all_investors == ("Foo Ventures",)
    assert draft.theme == "Cloud Security"
    assert draft.confidence == pytest.approx(0.9)
    assert draft.raw_text == ACME_TEXT
    assert draft.extracted_entities.organizations == ["Acme Cyber Inc.", "Foo Ventures"]
    assert metrics.counted("extraction.success") == 1


def test_unparseable_response_yields_zero_confidence_draft():
    inference = StubInference([], default="I could not find any funding information.")

    draft = _extractor(inference).process("Nothing to see here")

    assert draft.confidence == 0.0
    assert draft.company_name == ""
    assert draft.amount == 0
    assert draft.all_investors == ()


def test_empty_response_raises_extraction_error():
    inference = StubInference([], default="   ")
    extractor = _extractor(inference)

    with pytest.raises(ExtractionError):
        extractor.process(ACME_TEXT)
    assert extractor.failed == 1


def test_unreachable_inference_raises_extraction_error():
    inference = StubInference([], default=InferenceError("boom", code="INFERENCE_UPSTREAM"))
    metrics = StubMetrics()

    with pytest.raises(ExtractionError) as exc_info:
        _extractor(inference, metrics).process(ACME_TEXT)

    assert exc_info.value.code == "EXTRACTION_ERROR"
    assert metrics.tags_of("extraction.failure") == [{"code": "INFERENCE_UPSTREAM"}]


def test_transient_errors_are_retried():
    inference = StubInference([(ACME_TEXT, [InferenceRateLimitError(), json.dumps(ACME_ENTITIES)])])

    draft = _extractor(inference).process(ACME_TEXT)

    assert draft.company_name == "Acme Cyber"
    assert len(inference.prompts) == 2


def test_process_batch_skips_failures_and_keeps_order():
    inference = StubInference(
        [
            ("broken article", InferenceError("down")),
            (ACME_TEXT, json.dumps(ACME_ENTITIES)),
        ]
    )
    extractor = _extractor(inference)

    batch = extractor.process_batch(["broken article", ACME_TEXT])

    assert [draft.company_name for draft in batch.drafts] == ["Acme Cyber"]
    assert [failure.index for failure in batch.failures] == [0]
    assert extractor.status()["status"] == "operational"


def test_parse_entities_defaults_confidence_and_accepts_fenced_json():
    entities = parse_entities('```json\n{"organizations": ["Acme"], "money": "$1M"}\n```')

    assert entities.organizations == ["Acme"]
    assert entities.money == ["$1M"]
    assert entities.confidence == 0.5


def test_parse_entities_ignores_trailing_prose_with_braces():
    entities = parse_entities(
        'Here you go: {"organizations": ["Acme"], "money": ["$1M"], "confidence": 0.8}\nNote: fields use {braces}.'
    )

    assert entities.organizations == ["Acme"]
    assert entities.confidence == 0.8


def test_build_draft_clamps_amount_and_confidence():
    entities = parse_entities(json.dumps({"organizations": ["Acme"], "money": ["-5"], "confidence": 3}))

    draft = build_draft(entities, "raw")

    assert draft.amount >= 0
    assert draft.confidence == 1.0
    assert draft.lead_investor == ""
