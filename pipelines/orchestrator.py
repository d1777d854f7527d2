"""Drive raw funding texts through extraction, verification and profiling."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from app.clients.crunchbase import CrunchbaseClient
from app.clients.inference import OpenAIInferenceClient
from app.clients.page_fetch import PageFetcher
from app.clients.peopledatalabs import PeopleDataLabsClient
from app.clients.tavily import TavilyClient
from app.config import Settings, settings as default_settings
from app.models.funding import AnalysisResult
from app.models.queue import Priority, QueueItemType, VerificationQueueItem
from app.models.workflow import WorkflowItem, WorkflowItemStatus, WorkflowResult
from app.observability.metrics import MetricsReporter, metrics
from pipelines.extraction import FundingExtractor
from pipelines.normalize import linkedin_company_url
from pipelines.profiling import CompanyProfiler
from pipelines.queue import InMemoryVerificationQueue, VerificationQueue
from pipelines.rate_limit import RateLimiter
from pipelines.verification.reconciliation import ScoringPolicy
from pipelines.verification.source_discovery import SourceDiscovery
from pipelines.verification.verifier import FundingVerifier

logger = logging.getLogger("pipelines.orchestrator")


@dataclass(frozen=True)
class WorkflowConfig:
    """Run configuration accepted by a batch or single-article call."""

    inference_api_key: str = ""
    search_api_key: str = ""
    confidence_threshold: float = 0.75
    max_batch_size: int = 25
    high_priority_confidence: float = 0.3

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "WorkflowConfig":
        source = settings or default_settings
        return cls(
            inference_api_key=source.openai_api_key or "",
            search_api_key=source.tavily_api_key or "",
            confidence_threshold=source.confidence_threshold,
            max_batch_size=source.max_batch_size,
            high_priority_confidence=source.high_priority_confidence,
        )


@dataclass
class _RunState:
    verified: list[WorkflowItem] = field(default_factory=list)
    manual: list[WorkflowItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class WorkflowOrchestrator:
    """Owns the verification queue and sequences the pipeline components."""

    def __init__(
        self,
        extractor: FundingExtractor,
        verifier: FundingVerifier,
        profiler: CompanyProfiler,
        *,
        config: WorkflowConfig | None = None,
        queue: VerificationQueue | None = None,
        verification_pacer: RateLimiter | None = None,
        profiling_pacer: RateLimiter | None = None,
        metrics_reporter: MetricsReporter | None = None,
        closers: Sequence[Callable[[], None]] = (),
    ) -> None:
        self.extractor = extractor
        self.verifier = verifier
        self.profiler = profiler
        self.config = config or WorkflowConfig()
        self.queue: VerificationQueue = queue if queue is not None else profiler.queue
        self._verification_pacer = verification_pacer
        self._profiling_pacer = profiling_pacer
        self._metrics = metrics_reporter or metrics
        self._closers = list(closers)

    def execute_complete_workflow(self, raw_texts: Sequence[str]) -> WorkflowResult:
        """Run a batch end to end. Partial results survive an unexpected failure."""
        started = time.perf_counter()
        state = _RunState()
        success = True
        try:
            self._run(list(raw_texts), state)
        except Exception as exc:  # noqa: BLE001 - surfaced in WorkflowResult.errors
            logger.exception("workflow.failed")
            state.errors.append(f"Workflow failed: {exc}")
            success = False

        duration_ms = (time.perf_counter() - started) * 1000
        self._metrics.timing("workflow.latency_ms", duration_ms)
        results = state.verified + state.manual
        result = WorkflowResult(
            success=success,
            processed_count=len(results),
            verified_count=len(state.verified),
            manual_review_count=len(state.manual),
            results=results,
            errors=state.errors,
            execution_time_ms=round(duration_ms, 3),
        )
        logger.info(
            "Workflow finished: %s processed, %s verified, %s manual review, %s errors in %.0fms",
            result.processed_count,
            result.verified_count,
            result.manual_review_count,
            len(result.errors),
            duration_ms,
        )
        return result

    def _run(self, raw_texts: list[str], state: _RunState) -> None:
        if len(raw_texts) > self.config.max_batch_size:
            logger.warning(
                "workflow.batch_truncated",
                extra={"received": len(raw_texts), "max_batch_size": self.config.max_batch_size},
            )
            raw_texts = raw_texts[: self.config.max_batch_size]

        logger.info("Phase 2: extracting %s articles", len(raw_texts))
        batch = self.extractor.process_batch(raw_texts)
        state.errors.extend(f"Article {failure.index + 1}: {failure.message}" for failure in batch.failures)

        logger.info("Phase 3: verifying %s drafts", len(batch.drafts))
        analyses = self.verifier.analyze_batch(batch.drafts, pacer=self._verification_pacer)
        approved: list[AnalysisResult] = []
        for analysis in analyses:
            if self._is_approved(analysis):
                approved.append(analysis)
            else:
                item = self._enqueue_review(analysis)
                state.manual.append(
                    WorkflowItem(
                        status=WorkflowItemStatus.MANUAL_REVIEW_REQUIRED,
                        analysis=analysis,
                        queue_item_id=item.id,
                    )
                )

        logger.info("Phase 4: profiling %s verified companies", len(approved))
        for analysis in approved:
            if self._profiling_pacer is not None:
                with self._profiling_pacer:
                    state.verified.append(self._profile(analysis, state.errors))
            else:
                state.verified.append(self._profile(analysis, state.errors))

    def process_single_article(self, raw_text: str) -> WorkflowItem:
        """Extract, verify and (when approved) profile one article without pacing.

        Raises ExtractionError when the inference service is unavailable.
        """
        draft = self.extractor.process(raw_text)
        analysis = self.verifier.analyze(draft)
        if not self._is_approved(analysis):
            item = self._enqueue_review(analysis)
            return WorkflowItem(
                status=WorkflowItemStatus.MANUAL_REVIEW_REQUIRED,
                analysis=analysis,
                queue_item_id=item.id,
            )
        return self._profile(analysis)

    def get_verification_queue(self) -> list[VerificationQueueItem]:
        return self.queue.list_sorted()

    def complete_verification_task(self, item_id: str, updated_data: dict[str, Any] | None = None) -> bool:
        removed = self.queue.remove(item_id)
        if removed is None:
            logger.warning("queue.complete_unknown", extra={"item_id": item_id})
            return False
        logger.info(
            "queue.completed",
            extra={
                "item_id": item_id,
                "type": removed.type.value,
                "company": removed.company_name,
                "updated_fields": sorted(updated_data) if updated_data else [],
            },
        )
        self._metrics.gauge("queue.depth", len(self.queue))
        return True

    def get_workflow_stats(self) -> dict[str, Any]:
        items = self.queue.list_sorted()
        by_type = Counter(item.type.value for item in items)
        by_priority = Counter(item.priority.value for item in items)
        return {
            "queue_length": len(items),
            "by_type": {kind.value: by_type.get(kind.value, 0) for kind in QueueItemType},
            "by_priority": {level.value: by_priority.get(level.value, 0) for level in Priority},
            "profiling_tasks": by_type.get(QueueItemType.COMPANY_PROFILING.value, 0),
            "agents": self.get_agent_status(),
        }

    def get_agent_status(self) -> dict[str, Any]:
        return {
            "extractor": self.extractor.status(),
            "verifier": self.verifier.status(),
            "profiler": self.profiler.status(),
            "confidence_threshold": self.config.confidence_threshold,
            "max_batch_size": self.config.max_batch_size,
        }

    def close(self) -> None:
        for closer in self._closers:
            closer()
        self._closers.clear()

    def _is_approved(self, analysis: AnalysisResult) -> bool:
        return analysis.verified and analysis.confidence.overall >= self.config.confidence_threshold

    def _enqueue_review(self, analysis: AnalysisResult) -> VerificationQueueItem:
        overall = analysis.confidence.overall
        final = analysis.final_data
        reason = analysis.review_reason or (
            f"Confidence {overall:.2f} below threshold {self.config.confidence_threshold:.2f}"
        )
        item = VerificationQueueItem(
            type=QueueItemType.DATA_VERIFICATION,
            company_name=final.company_name,
            data={
                "final_data": final.model_dump(mode="json", exclude={"raw_text", "extracted_entities"}),
                "confidence": analysis.confidence.model_dump(mode="json"),
                "discrepancies": [entry.model_dump(mode="json") for entry in analysis.discrepancies],
                "source_count": analysis.source_count,
                "sources": [source.url for source in analysis.sources],
            },
            reason=reason,
            priority=Priority.HIGH if overall < self.config.high_priority_confidence else Priority.MEDIUM,
        )
        self.queue.add(item)
        self._metrics.gauge("queue.depth", len(self.queue))
        return item

    def _profile(self, analysis: AnalysisResult, errors: list[str] | None = None) -> WorkflowItem:
        """Profile one verified company; a profiler crash is treated like a missing profile."""
        company_name = analysis.final_data.company_name
        try:
            profile = self.profiler.profile_company(company_name)
        except Exception as exc:  # noqa: BLE001 - the verified item is kept and queued for profiling
            logger.exception("workflow.profiling_failed", extra={"company": company_name})
            if errors is not None:
                errors.append(f"Profiling failed for {company_name}: {exc}")
            profile = None
        queue_item_id = None
        if profile is None:
            item = VerificationQueueItem(
                type=QueueItemType.COMPANY_PROFILING,
                company_name=company_name,
                data={"task": "profile_company", "description": f"Build company profile for {company_name}"},
                reason="profiling failed",
                priority=Priority.MEDIUM,
                linkedin_url=linkedin_company_url(company_name),
            )
            self.queue.add(item)
            self._metrics.gauge("queue.depth", len(self.queue))
            queue_item_id = item.id
        return WorkflowItem(
            status=WorkflowItemStatus.COMPLETE,
            analysis=analysis,
            profile=profile,
            queue_item_id=queue_item_id,
        )


def build_orchestrator(
    settings: Settings | None = None,
    *,
    config: WorkflowConfig | None = None,
) -> WorkflowOrchestrator:
    """Wire real service clients from settings."""
    settings = settings or default_settings
    config = config or WorkflowConfig.from_settings(settings)
    retry = {"retry_attempts": settings.retry_attempts, "retry_base_delay": settings.retry_base_delay_seconds}
    timeout = settings.http_timeout_seconds

    inference = OpenAIInferenceClient(
        config.inference_api_key,
        model=settings.inference_model,
        temperature=settings.inference_temperature,
        max_output_tokens=settings.inference_max_output_tokens,
        timeout=timeout,
    )
    search = TavilyClient(config.search_api_key, timeout=timeout)
    fetcher = PageFetcher(timeout=timeout)
    closers: list[Callable[[], None]] = [search.close, fetcher.close]
    primary = secondary = None
    if settings.crunchbase_api_key:
        primary = CrunchbaseClient(settings.crunchbase_api_key, timeout=timeout)
        closers.append(primary.close)
    if settings.pdl_api_key:
        secondary = PeopleDataLabsClient(settings.pdl_api_key, timeout=timeout)
        closers.append(secondary.close)

    inference_limiter = RateLimiter(settings.inference_interval_seconds, name="inference")
    search_limiter = RateLimiter(settings.search_interval_seconds, name="search")
    fetch_limiter = RateLimiter(settings.fetch_interval_seconds, name="fetch")
    queue = InMemoryVerificationQueue()

    extractor = FundingExtractor(inference, limiter=inference_limiter, **retry)
    discovery = SourceDiscovery(
        search,
        fetcher,
        search_limiter=search_limiter,
        fetch_limiter=fetch_limiter,
        max_sources=settings.max_verification_sources,
        results_per_query=settings.results_per_query,
        default_reliability=settings.default_source_reliability,
        **retry,
    )
    verifier = FundingVerifier(
        discovery,
        inference,
        policy=ScoringPolicy.from_settings(settings),
        inference_limiter=inference_limiter,
        source_content_chars=settings.source_content_chars,
        failsafe_confidence=settings.failsafe_confidence,
        **retry,
    )
    profiler = CompanyProfiler(
        primary_source=primary,
        secondary_source=secondary,
        search_client=search,
        fetcher=fetcher,
        inference_client=inference,
        queue=queue,
        search_limiter=search_limiter,
        fetch_limiter=fetch_limiter,
        inference_limiter=inference_limiter,
        results_per_query=settings.results_per_query,
        **retry,
    )
    return WorkflowOrchestrator(
        extractor,
        verifier,
        profiler,
        config=config,
        queue=queue,
        verification_pacer=RateLimiter(settings.verification_interval_seconds, name="verification"),
        profiling_pacer=RateLimiter(settings.profiling_interval_seconds, name="profiling"),
        closers=closers,
    )


def load_articles(path: Path) -> list[str]:
    """Read a JSON list of strings, or a text file with blank-line-separated articles."""
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(raw)
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise ValueError(f"{path} must contain a JSON list of strings.")
        return [item for item in data if item.strip()]
    blocks = [block.strip() for block in raw.replace("\r\n", "\n").split("\n\n")]
    return [block for block in blocks if block]


def persist_result(
    result: WorkflowResult | WorkflowItem,
    queue: Sequence[VerificationQueueItem],
    output_path: Path,
) -> None:
    payload = {
        "result": result.model_dump(mode="json"),
        "verification_queue": [item.model_dump(mode="json") for item in queue],
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Extract, verify and profile funding announcements.")
    parser.add_argument("--input", type=Path, required=True, help="JSON list of texts or blank-line separated file.")
    parser.add_argument("--output", type=Path, default=Path("workflow_result.json"), help="Output JSON path.")
    parser.add_argument("--max-batch-size", type=int, default=None, help="Override the configured batch size.")
    parser.add_argument("--threshold", type=float, default=None, help="Override the confidence threshold.")
    parser.add_argument("--single", action="store_true", help="Process only the first article interactively.")
    return parser.parse_args(argv)


def run_pipeline(
    *,
    input_path: Path,
    output_path: Path,
    max_batch_size: int | None = None,
    threshold: float | None = None,
    single: bool = False,
    orchestrator: WorkflowOrchestrator | None = None,
) -> WorkflowResult | WorkflowItem:
    """Run the workflow over an input file and persist the result with the queue snapshot."""
    articles = load_articles(input_path)
    logger.info("Loaded %s articles from %s.", len(articles), input_path)

    owned = orchestrator is None
    if orchestrator is None:
        base = WorkflowConfig.from_settings()
        config = WorkflowConfig(
            inference_api_key=base.inference_api_key,
            search_api_key=base.search_api_key,
            confidence_threshold=threshold if threshold is not None else base.confidence_threshold,
            max_batch_size=max_batch_size if max_batch_size is not None else base.max_batch_size,
            high_priority_confidence=base.high_priority_confidence,
        )
        orchestrator = build_orchestrator(config=config)

    try:
        if single:
            if not articles:
                raise ValueError(f"{input_path} contains no articles.")
            result: WorkflowResult | WorkflowItem = orchestrator.process_single_article(articles[0])
        else:
            result = orchestrator.execute_complete_workflow(articles)
        persist_result(result, orchestrator.get_verification_queue(), output_path)
    finally:
        if owned:
            orchestrator.close()

    logger.info("Persisted workflow output to %s.", output_path)
    return result


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    logging.basicConfig(
        level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv or sys.argv[1:])
    try:
        result = run_pipeline(
            input_path=args.input,
            output_path=args.output,
            max_batch_size=args.max_batch_size,
            threshold=args.threshold,
            single=args.single,
        )
    except (ValueError, OSError, RuntimeError) as exc:
        logger.error("Workflow run failed: %s (code=%s)", exc, getattr(exc, "code", "WORKFLOW_ERROR"))
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        logger.exception("Unexpected error during workflow run: %s", exc)
        return 1
    if isinstance(result, WorkflowResult) and not result.success:
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
