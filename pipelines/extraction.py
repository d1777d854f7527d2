"""Turn raw funding announcements into structured drafts via one inference call."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from app.clients.inference import (
    InferenceClient,
    InferenceError,
    InferenceRateLimitError,
    InferenceTimeoutError,
    parse_json_object,
)
from app.models.funding import ExtractedEntities, FundingDraft
from app.observability.metrics import MetricsReporter, metrics
from pipelines.normalize import (
    clamp,
    clean_investor_name,
    normalize_company_name,
    normalize_theme,
    parse_amount,
    standardize_funding_stage,
)
from pipelines.rate_limit import RateLimiter, SleepFn, call_with_retry

logger = logging.getLogger("pipelines.extraction")

TRANSIENT_INFERENCE_ERRORS = (InferenceRateLimitError, InferenceTimeoutError)

_NER_PROMPT = """\
You are a Named Entity Recognition system for startup funding announcements.

Extract these entities from the text below:
ORGANIZATION: the funded company first, then every investor (lead investor first)
MONEY: funding amounts
FUNDING_STAGE: round type (Seed Round, Series A, Series B, ...)
TECHNOLOGY: technology sub-sector of the funded company

Text to analyze:
\"\"\"
{text}
\"\"\"

Return only JSON in exactly this shape:
{{
  "organizations": ["company_name", "lead_investor", "other_investor"],
  "money": ["$10M"],
  "fundingStage": ["Series A"],
  "technology": ["cloud security"],
  "confidence": 0.95
}}
confidence is 0.0-1.0 and reflects how clearly the text states the facts.
"""


class ExtractionError(RuntimeError):
    """Raised when the inference service cannot produce a response for a text."""

    def __init__(self, message: str, code: str = "EXTRACTION_ERROR") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ExtractionFailure:
    index: int
    message: str


@dataclass
class ExtractionBatch:
    """Drafts extracted from a batch plus the items that were skipped."""

    drafts: list[FundingDraft] = field(default_factory=list)
    failures: list[ExtractionFailure] = field(default_factory=list)


def build_ner_prompt(text: str) -> str:
    return _NER_PROMPT.format(text=text)


def parse_entities(response_text: str) -> ExtractedEntities:
    """Parse the NER response; a response without a JSON object yields empty entities."""
    try:
        payload = parse_json_object(response_text)
    except ValueError:
        logger.warning("extraction.parse_error", extra={"preview": response_text[:120]})
        return ExtractedEntities(confidence=0.0)

    return ExtractedEntities(
        organizations=_string_list(payload.get("organizations")),
        money=_string_list(payload.get("money")),
        funding_stage=_string_list(payload.get("fundingStage") or payload.get("funding_stage")),
        technology=_string_list(payload.get("technology")),
        confidence=_as_confidence(payload.get("confidence"), default=0.5),
    )


def build_draft(entities: ExtractedEntities, raw_text: str) -> FundingDraft:
    """Map entities onto draft fields and normalize them."""
    organizations = entities.organizations
    investors = tuple(
        cleaned for cleaned in (clean_investor_name(name) for name in organizations[1:]) if cleaned
    )
    return FundingDraft(
        company_name=normalize_company_name(organizations[0]) if organizations else "",
        theme=normalize_theme(entities.technology[0]) if entities.technology else "",
        amount=max(0, parse_amount(entities.money[0])) if entities.money else 0,
        funding_stage=standardize_funding_stage(entities.funding_stage[0]) if entities.funding_stage else "",
        lead_investor=investors[0] if investors else "",
        all_investors=investors,
        confidence=clamp(entities.confidence, 0.0, 1.0),
        raw_text=raw_text,
        extracted_entities=entities,
    )


class FundingExtractor:
    """Extracts a FundingDraft from one raw text block."""

    def __init__(
        self,
        client: InferenceClient,
        *,
        limiter: RateLimiter | None = None,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        sleep: SleepFn | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._client = client
        self._limiter = limiter or RateLimiter(0.0, name="inference")
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._metrics = metrics_reporter or metrics
        self.processed = 0
        self.failed = 0

    def process(self, raw_text: str) -> FundingDraft:
        """Extract one draft. Raises ExtractionError when inference is unavailable."""
        prompt = build_ner_prompt(raw_text)
        try:
            response_text = call_with_retry(
                lambda: self._limiter.call(lambda: self._client.complete(prompt)),
                retry_on=TRANSIENT_INFERENCE_ERRORS,
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                sleep=self._sleep,
                provider="inference",
            )
        except InferenceError as exc:
            self.failed += 1
            self._metrics.increment("extraction.failure", tags={"code": exc.code})
            raise ExtractionError(f"Failed to process article: {exc}") from exc

        if not response_text or not response_text.strip():
            self.failed += 1
            self._metrics.increment("extraction.failure", tags={"code": "EMPTY_RESPONSE"})
            raise ExtractionError("Failed to process article: empty inference response")

        draft = build_draft(parse_entities(response_text), raw_text)
        self.processed += 1
        self._metrics.increment("extraction.success")
        logger.info(
            "extraction.draft",
            extra={"company": draft.company_name, "stage": draft.funding_stage, "confidence": draft.confidence},
        )
        return draft

    def process_batch(self, raw_texts: Sequence[str], *, pacer: RateLimiter | None = None) -> ExtractionBatch:
        """Process texts sequentially; failed items are logged and skipped."""
        batch = ExtractionBatch()
        total = len(raw_texts)
        for index, text in enumerate(raw_texts):
            logger.info("Processing article %s/%s", index + 1, total)
            try:
                if pacer is not None:
                    with pacer:
                        draft = self.process(text)
                else:
                    draft = self.process(text)
            except ExtractionError as exc:
                logger.error("Failed to process article %s: %s", index + 1, exc)
                batch.failures.append(ExtractionFailure(index=index, message=str(exc)))
                continue
            batch.drafts.append(draft)
        return batch

    def status(self) -> dict[str, Any]:
        return {
            "name": "extractor",
            "status": "degraded" if self.failed and not self.processed else "operational",
            "processed": self.processed,
            "failed": self.failed,
        }


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _as_confidence(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return clamp(float(value), 0.0, 1.0)
    if isinstance(value, str):
        try:
            return clamp(float(value), 0.0, 1.0)
        except ValueError:
            return default
    return default
