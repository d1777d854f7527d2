"""Find corroborating documents for a funding draft on reliable news domains."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol, Sequence

from app.clients.tavily import SearchHit, TavilyError, TavilyRateLimitError, TavilyTimeoutError
from app.models.funding import FundingDraft, VerificationSource
from pipelines.normalize import canonical_domain
from pipelines.rate_limit import RateLimiter, SleepFn, call_with_retry

logger = logging.getLogger("pipelines.verification.source_discovery")

# None means listed as a funding-news outlet without a dedicated score.
RELIABLE_DOMAINS: dict[str, float | None] = {
    "techcrunch.com": 0.95,
    "bloomberg.com": 0.95,
    "reuters.com": 0.95,
    "crunchbase.com": 0.90,
    "wsj.com": 0.90,
    "forbes.com": 0.85,
    "venturebeat.com": 0.85,
    "businesswire.com": 0.80,
    "prnewswire.com": 0.80,
    "securityweek.com": 0.75,
    "darkreading.com": 0.75,
    "cybersecuritydive.com": None,
}

FUNDING_KEYWORDS = ("funding", "investment", "raises", "series")
TRANSIENT_SEARCH_ERRORS = (TavilyRateLimitError, TavilyTimeoutError)


class WebSearchClient(Protocol):
    def search(self, query: str, *, max_results: int = 5) -> list[SearchHit]: ...


class TextFetcher(Protocol):
    def fetch_text(self, url: str) -> str | None: ...


def build_search_queries(draft: FundingDraft) -> list[str]:
    """Up to four queries: amount/stage, raise wording, lead investor, generic announcement."""
    company = draft.company_name.strip()
    if not company:
        return []
    amount = f"${draft.amount:,}" if draft.amount else ""
    queries = [
        " ".join(part for part in (f'"{company}" funding', amount, draft.funding_stage) if part),
        " ".join(part for part in (f'"{company}" raises', draft.funding_stage) if part),
    ]
    if draft.lead_investor:
        queries.append(f'"{draft.lead_investor}" invests "{company}"')
    queries.append(" ".join(part for part in (company, draft.theme, "funding announcement") if part))
    return queries


def source_reliability(
    url: str,
    *,
    domains: Mapping[str, float | None] = RELIABLE_DOMAINS,
    default: float = 0.60,
) -> float | None:
    """Reliability of a URL's domain, or None when the domain is not a known outlet."""
    domain = canonical_domain(url)
    if domain not in domains:
        return None
    score = domains[domain]
    return default if score is None else score


def contains_relevant_info(content: str, company_name: str) -> bool:
    lowered = content.lower()
    if company_name.strip().lower() not in lowered:
        return False
    return any(keyword in lowered for keyword in FUNDING_KEYWORDS)


def canonical_url(url: str) -> str:
    stripped = url.strip().split("#", 1)[0].rstrip("/")
    if "://" in stripped:
        scheme, rest = stripped.split("://", 1)
        stripped = f"{scheme.lower()}://{rest}"
    return stripped.replace("://www.", "://", 1)


class SourceDiscovery:
    """Runs the search queries for a draft and keeps relevant pages from reliable domains."""

    def __init__(
        self,
        search_client: WebSearchClient,
        fetcher: TextFetcher,
        *,
        search_limiter: RateLimiter | None = None,
        fetch_limiter: RateLimiter | None = None,
        max_sources: int = 10,
        results_per_query: int = 3,
        default_reliability: float = 0.60,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        sleep: SleepFn | None = None,
    ) -> None:
        self._search = search_client
        self._fetcher = fetcher
        self._search_limiter = search_limiter or RateLimiter(0.0, name="search")
        self._fetch_limiter = fetch_limiter or RateLimiter(0.0, name="fetch")
        self._max_sources = max_sources
        self._results_per_query = results_per_query
        self._default_reliability = default_reliability
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

    def discover(self, draft: FundingDraft) -> list[VerificationSource]:
        sources: list[VerificationSource] = []
        seen: set[str] = set()
        for query in build_search_queries(draft):
            if len(sources) >= self._max_sources:
                break
            for hit in self._run_query(query)[: self._results_per_query]:
                if len(sources) >= self._max_sources:
                    break
                source = self._evaluate_hit(hit, draft.company_name, seen)
                if source is not None:
                    sources.append(source)
        logger.info(
            "verifier.sources_discovered",
            extra={"company": draft.company_name, "count": len(sources)},
        )
        return sources

    def _run_query(self, query: str) -> Sequence[SearchHit]:
        try:
            return call_with_retry(
                lambda: self._search_limiter.call(
                    lambda: self._search.search(query, max_results=self._results_per_query)
                ),
                retry_on=TRANSIENT_SEARCH_ERRORS,
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                sleep=self._sleep,
                provider="search",
            )
        except TavilyError as exc:
            logger.warning("verifier.search_failed", extra={"query": query, "code": exc.code})
            return []

    def _evaluate_hit(self, hit: SearchHit, company_name: str, seen: set[str]) -> VerificationSource | None:
        reliability = source_reliability(hit.url, default=self._default_reliability)
        if reliability is None:
            return None
        key = canonical_url(hit.url)
        if key in seen:
            return None
        seen.add(key)
        content = self._fetch_limiter.call(lambda: self._fetcher.fetch_text(hit.url))
        if not content or not contains_relevant_info(content, company_name):
            return None
        return VerificationSource(url=hit.url, title=hit.title, content=content, reliability=reliability)
