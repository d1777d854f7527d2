"""Multi-source verification of extracted funding drafts."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

from app.clients.inference import InferenceClient, InferenceError, parse_json_object
from app.models.funding import AnalysisResult, ConfidenceScore, FundingDraft, VerificationSource
from app.observability.metrics import MetricsReporter, metrics
from pipelines.extraction import TRANSIENT_INFERENCE_ERRORS
from pipelines.rate_limit import RateLimiter, SleepFn, call_with_retry
from pipelines.verification.reconciliation import (
    ScoringPolicy,
    SourceObservation,
    build_final_data,
    detect_discrepancies,
    observation_from_draft,
    observation_from_payload,
    reconcile,
    review_decision,
    score_confidence,
)
from pipelines.verification.source_discovery import SourceDiscovery

logger = logging.getLogger("pipelines.verification.verifier")

_SOURCE_PROMPT = """\
Extract funding information from this article about {company}.

Article:
\"\"\"
{content}
\"\"\"

Return only JSON in exactly this shape, using empty strings for anything the article does not state:
{{
  "companyName": "",
  "amount": "",
  "fundingStage": "",
  "leadInvestor": "",
  "allInvestors": [],
  "theme": ""
}}
"""


def build_source_prompt(company_name: str, content: str, *, max_chars: int = 2000) -> str:
    return _SOURCE_PROMPT.format(company=company_name or "the company", content=content[:max_chars])


class FundingVerifier:
    """Corroborates a draft against independent sources and scores each field."""

    def __init__(
        self,
        discovery: SourceDiscovery,
        inference_client: InferenceClient,
        *,
        policy: ScoringPolicy | None = None,
        inference_limiter: RateLimiter | None = None,
        source_content_chars: int = 2000,
        failsafe_confidence: float = 0.1,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        sleep: SleepFn | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._discovery = discovery
        self._inference = inference_client
        self._policy = policy or ScoringPolicy()
        self._limiter = inference_limiter or RateLimiter(0.0, name="inference")
        self._content_chars = source_content_chars
        self._failsafe_confidence = failsafe_confidence
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._metrics = metrics_reporter or metrics
        self.analyzed = 0
        self.verified = 0
        self.failsafe = 0

    def analyze(self, draft: FundingDraft) -> AnalysisResult:
        """Verify one draft. Never raises; internal failures yield the failsafe result."""
        started = time.perf_counter()
        self.analyzed += 1
        try:
            result = self._analyze(draft)
        except Exception as exc:  # noqa: BLE001 - any failure becomes a review item
            logger.exception("verifier.failed", extra={"company": draft.company_name})
            self.failsafe += 1
            self._metrics.increment("verification.failsafe")
            return self._failsafe_result(draft, exc)

        duration_ms = (time.perf_counter() - started) * 1000
        self._metrics.timing("verification.latency_ms", duration_ms)
        if result.verified:
            self.verified += 1
            self._metrics.increment("verification.verified")
        else:
            self._metrics.increment("verification.manual_review")
        logger.info(
            "verifier.decision",
            extra={
                "company": draft.company_name,
                "overall": round(result.confidence.overall, 4),
                "source_count": result.source_count,
                "verified": result.verified,
                "reason": result.review_reason,
            },
        )
        return result

    def analyze_batch(self, drafts: Sequence[FundingDraft], *, pacer: RateLimiter | None = None) -> list[AnalysisResult]:
        results: list[AnalysisResult] = []
        for index, draft in enumerate(drafts):
            logger.info("Verifying draft %s/%s: %s", index + 1, len(drafts), draft.company_name)
            if pacer is not None:
                with pacer:
                    results.append(self.analyze(draft))
            else:
                results.append(self.analyze(draft))
        return results

    def status(self) -> dict[str, Any]:
        return {
            "name": "verifier",
            "status": "operational",
            "analyzed": self.analyzed,
            "verified": self.verified,
            "failsafe": self.failsafe,
        }

    def _analyze(self, draft: FundingDraft) -> AnalysisResult:
        sources = self._discovery.discover(draft)
        observations: list[SourceObservation] = [
            observation_from_draft(draft, reliability=self._policy.draft_reliability)
        ]
        for source in sources:
            observation = self._observe(source, draft.company_name)
            if observation is not None:
                observations.append(observation)

        total = len(observations)
        fields = reconcile(observations)
        confidence = score_confidence(fields, total, self._policy)
        discrepancies = detect_discrepancies(fields, total, self._policy)
        requires_review, reason = review_decision(confidence, total, discrepancies, self._policy)
        return AnalysisResult(
            confidence=confidence,
            discrepancies=discrepancies,
            sources=sources,
            source_count=total,
            final_data=build_final_data(draft, fields),
            requires_manual_review=requires_review,
            review_reason=reason,
        )

    def _observe(self, source: VerificationSource, company_name: str) -> SourceObservation | None:
        """Re-extract the funding fields from one source; unusable sources are skipped."""
        prompt = build_source_prompt(company_name, source.content, max_chars=self._content_chars)
        try:
            response_text = call_with_retry(
                lambda: self._limiter.call(lambda: self._inference.complete(prompt)),
                retry_on=TRANSIENT_INFERENCE_ERRORS,
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                sleep=self._sleep,
                provider="inference",
            )
            payload = parse_json_object(response_text)
        except InferenceError as exc:
            logger.warning("verifier.source_extraction_failed", extra={"url": source.url, "code": exc.code})
            return None
        except ValueError:
            logger.warning("verifier.source_unparseable", extra={"url": source.url})
            return None
        return observation_from_payload(payload, reliability=source.reliability, url=source.url)

    def _failsafe_result(self, draft: FundingDraft, exc: Exception) -> AnalysisResult:
        return AnalysisResult(
            confidence=ConfidenceScore.uniform(self._failsafe_confidence),
            discrepancies=[],
            sources=[],
            source_count=0,
            final_data=draft,
            requires_manual_review=True,
            review_reason=f"Analysis failed: {exc}",
        )
