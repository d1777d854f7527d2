"""Tiered firmographic profiling for verified companies."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterable, Protocol, Sequence, TypeVar

from bs4 import BeautifulSoup, Tag

from app.clients.crunchbase import CrunchbaseError, CrunchbaseRateLimitError, CrunchbaseTimeoutError
from app.clients.inference import (
    InferenceClient,
    InferenceError,
    InferenceRateLimitError,
    InferenceTimeoutError,
    parse_json_object,
)
from app.clients.peopledatalabs import (
    PeopleDataLabsError,
    PeopleDataLabsRateLimitError,
    PeopleDataLabsTimeoutError,
)
from app.clients.tavily import SearchHit, TavilyError, TavilyRateLimitError, TavilyTimeoutError
from app.models.company import CompanyProfile, CompanyRecord, TeamMember, TeamMemberSource
from app.models.queue import Priority, QueueItemType, VerificationQueueItem
from app.observability.metrics import MetricsReporter, metrics
from pipelines.normalize import linkedin_company_url
from pipelines.queue import InMemoryVerificationQueue, VerificationQueue
from pipelines.rate_limit import RateLimiter, SleepFn, call_with_retry
from pipelines.verification.source_discovery import WebSearchClient

logger = logging.getLogger("pipelines.profiling")

_T = TypeVar("_T")

PROVIDER_ERRORS = (CrunchbaseError, PeopleDataLabsError, TavilyError, InferenceError)
TRANSIENT_PROVIDER_ERRORS = (
    CrunchbaseRateLimitError,
    CrunchbaseTimeoutError,
    PeopleDataLabsRateLimitError,
    PeopleDataLabsTimeoutError,
    TavilyRateLimitError,
    TavilyTimeoutError,
    InferenceRateLimitError,
    InferenceTimeoutError,
)

_SCALAR_FIELDS = ("website", "founded_year", "employee_range", "location", "description")
_TEAM_HEADING = re.compile(r"\b(team|leadership|founders?|management|our people)\b", re.IGNORECASE)
_ABOUT_HEADING = re.compile(r"\b(about|who we are|our story|our mission)\b", re.IGNORECASE)
_PERSON_NAME = re.compile(r"^[A-Z][\w'.-]+(?: [A-Z][\w'.-]+){1,3}$")

_FOUNDER_PROMPT = """\
From the search results below, list the founders and executives of {company}.

{results}

Return only JSON in exactly this shape, with an empty list when nobody is named:
{{"founders": [{{"name": "Full Name", "title": "CEO & Co-founder"}}]}}
"""

_TIER3_TASKS = (
    ("missing_founders", Priority.HIGH, "Find founders and key executives", "team"),
    ("verify_employee_count", Priority.MEDIUM, "Verify employee count", "employee count"),
    ("verify_location", Priority.MEDIUM, "Verify headquarters location", "location"),
)


class CompanyDataSource(Protocol):
    def lookup(self, company_name: str) -> CompanyRecord | None: ...


class HtmlFetcher(Protocol):
    def fetch_html(self, url: str) -> str | None: ...


class CompanyProfiler:
    """Builds a CompanyProfile through structured lookup, broad search and manual tasks."""

    def __init__(
        self,
        *,
        primary_source: CompanyDataSource | None = None,
        secondary_source: CompanyDataSource | None = None,
        search_client: WebSearchClient | None = None,
        fetcher: HtmlFetcher | None = None,
        inference_client: InferenceClient | None = None,
        queue: VerificationQueue | None = None,
        lookup_limiter: RateLimiter | None = None,
        search_limiter: RateLimiter | None = None,
        fetch_limiter: RateLimiter | None = None,
        inference_limiter: RateLimiter | None = None,
        results_per_query: int = 3,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        sleep: SleepFn | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._primary = primary_source
        self._secondary = secondary_source
        self._search = search_client
        self._fetcher = fetcher
        self._inference = inference_client
        self.queue: VerificationQueue = queue if queue is not None else InMemoryVerificationQueue()
        self._lookup_limiter = lookup_limiter or RateLimiter(0.0, name="company_lookup")
        self._search_limiter = search_limiter or RateLimiter(0.0, name="search")
        self._fetch_limiter = fetch_limiter or RateLimiter(0.0, name="fetch")
        self._inference_limiter = inference_limiter or RateLimiter(0.0, name="inference")
        self._results_per_query = results_per_query
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._metrics = metrics_reporter or metrics
        self.profiled = 0
        self.complete = 0
        self.failed = 0
        self.tasks_created = 0

    def profile_company(self, company_name: str) -> CompanyProfile | None:
        """Profile one company. Returns None only when an unexpected internal error occurs."""
        try:
            profile = self._profile(company_name)
        except Exception:  # noqa: BLE001 - caller queues a profiling task instead
            logger.exception("profiler.failed", extra={"company": company_name})
            self.failed += 1
            self._metrics.increment("profiling.failed")
            return None

        self.profiled += 1
        if profile.is_complete:
            self.complete += 1
            self._metrics.increment("profiling.complete")
        else:
            self._metrics.increment("profiling.incomplete")
        return profile

    def status(self) -> dict[str, Any]:
        return {
            "name": "profiler",
            "status": "operational",
            "profiled": self.profiled,
            "complete": self.complete,
            "failed": self.failed,
            "tasks_created": self.tasks_created,
        }

    def _profile(self, company_name: str) -> CompanyProfile:
        profile = CompanyProfile(name=company_name)
        for tier, step in ((1, self._structured_lookup), (2, self._broad_search), (3, self._manual_fallback)):
            if profile.is_complete:
                break
            step(profile)
            logger.info(
                "profiler.tier_complete",
                extra={"company": company_name, "tier": tier, "missing": profile.missing_fields()},
            )
        return profile

    # Tier 1

    def _structured_lookup(self, profile: CompanyProfile) -> None:
        for source, provider in ((self._primary, "primary"), (self._secondary, "secondary")):
            if source is None:
                continue
            record = self._call(
                self._lookup_limiter, lambda source=source: source.lookup(profile.name), provider=provider
            )
            if record is None:
                continue
            fill_missing_fields(profile, record)
            profile.add_team_members(record.team_members)

    # Tier 2

    def _broad_search(self, profile: CompanyProfile) -> None:
        if not profile.team_members:
            profile.add_team_members(self._search_founders(profile.name))
        if not profile.description:
            profile.description = self._search_description(profile.name)
        if profile.website:
            self._parse_website(profile)

    def _search_founders(self, company_name: str) -> list[TeamMember]:
        hits = self._search_hits(f'"{company_name}" founders CEO co-founder')
        if not hits or self._inference is None:
            return []
        results = "\n".join(f"- {hit.title}: {hit.snippet}" for hit in hits)
        prompt = _FOUNDER_PROMPT.format(company=company_name, results=results)
        response_text = self._call(
            self._inference_limiter, lambda: self._inference.complete(prompt), provider="inference"
        )
        if not response_text:
            return []
        try:
            payload = parse_json_object(response_text)
        except ValueError:
            logger.warning("profiler.founders_unparseable", extra={"company": company_name})
            return []
        members: list[TeamMember] = []
        for entry in payload.get("founders") or []:
            if not isinstance(entry, dict) or not str(entry.get("name") or "").strip():
                continue
            members.append(
                TeamMember(
                    name=str(entry["name"]).strip(),
                    title=str(entry.get("title") or "Founder").strip(),
                    source=TeamMemberSource.WEB_SEARCH,
                )
            )
        return members

    def _search_description(self, company_name: str) -> str:
        lowered = company_name.lower()
        for hit in self._search_hits(f'"{company_name}" funding announcement'):
            if hit.snippet and lowered in hit.snippet.lower():
                return hit.snippet
        return ""

    def _parse_website(self, profile: CompanyProfile) -> None:
        if self._fetcher is None:
            return
        base = profile.website.rstrip("/")
        for url in (base, f"{base}/about"):
            html = self._fetch_limiter.call(lambda url=url: self._fetcher.fetch_html(url))
            if not html:
                continue
            if not profile.team_members:
                profile.add_team_members(parse_team_section(html))
            if not profile.description:
                profile.description = parse_about_description(html)

    def _search_hits(self, query: str) -> Sequence[SearchHit]:
        if self._search is None:
            return []
        hits = self._call(
            self._search_limiter,
            lambda: self._search.search(query, max_results=self._results_per_query),
            provider="search",
        )
        return hits or []

    # Tier 3

    def _manual_fallback(self, profile: CompanyProfile) -> None:
        gaps = {
            "missing_founders": not profile.team_members,
            "verify_employee_count": not profile.employee_range,
            "verify_location": not profile.location,
        }
        linkedin_url = linkedin_company_url(profile.name)
        missing: list[str] = []
        for task, priority, description, label in _TIER3_TASKS:
            if not gaps[task]:
                continue
            missing.append(label)
            self._enqueue_task(profile.name, task, description, priority, linkedin_url)
        if len(missing) > 1:
            self._enqueue_task(
                profile.name,
                "comprehensive_review",
                f"Review the LinkedIn company page and update {', '.join(missing)}",
                Priority.HIGH,
                linkedin_url,
            )

    def _enqueue_task(
        self, company_name: str, task: str, description: str, priority: Priority, linkedin_url: str
    ) -> None:
        item = VerificationQueueItem(
            type=QueueItemType.COMPANY_PROFILING,
            company_name=company_name,
            data={"task": task, "description": f"{description} for {company_name}"},
            reason=description,
            priority=priority,
            linkedin_url=linkedin_url,
        )
        self.queue.add(item)
        self.tasks_created += 1

    def _call(self, limiter: RateLimiter, func: Callable[[], _T], *, provider: str) -> _T | None:
        """Run one provider call with pacing and retry; provider failures yield None."""
        try:
            return call_with_retry(
                lambda: limiter.call(func),
                retry_on=TRANSIENT_PROVIDER_ERRORS,
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                sleep=self._sleep,
                provider=provider,
            )
        except PROVIDER_ERRORS as exc:
            logger.warning("profiler.provider_failed", extra={"provider": provider, "code": exc.code})
            return None


def fill_missing_fields(profile: CompanyProfile, record: CompanyRecord) -> None:
    """Copy scalar values from ``record`` into fields of ``profile`` that are still empty."""
    for name in _SCALAR_FIELDS:
        if not getattr(profile, name) and getattr(record, name):
            setattr(profile, name, getattr(record, name))
    if not profile.crunchbase_url and record.url and "crunchbase.com" in record.url:
        profile.crunchbase_url = record.url
    if not profile.angellist_url and record.angellist_url:
        profile.angellist_url = record.angellist_url


def parse_team_section(html: str) -> list[TeamMember]:
    """Find people listed under a team or leadership heading."""
    soup = BeautifulSoup(html, "html.parser")
    members: list[TeamMember] = []
    for heading in soup.find_all(["h1", "h2", "h3"]):
        if not _TEAM_HEADING.search(heading.get_text(" ", strip=True)):
            continue
        container = heading.find_parent(["section", "div", "article"]) or heading.parent
        if container is None:
            continue
        members.extend(_people_in(container, heading))
        if members:
            break
    return members


def _people_in(container: Tag, heading: Tag) -> Iterable[TeamMember]:
    for candidate in container.find_all(["h3", "h4", "h5", "strong"]):
        if candidate is heading:
            continue
        name = candidate.get_text(" ", strip=True)
        if not _PERSON_NAME.match(name):
            continue
        title_tag = candidate.find_next(["p", "span"])
        title = title_tag.get_text(" ", strip=True) if title_tag else ""
        yield TeamMember(name=name, title=title[:120], source=TeamMemberSource.WEBSITE)


def parse_about_description(html: str) -> str:
    """Return the about-us paragraph, falling back to the meta description."""
    soup = BeautifulSoup(html, "html.parser")
    for heading in soup.find_all(["h1", "h2", "h3"]):
        if not _ABOUT_HEADING.search(heading.get_text(" ", strip=True)):
            continue
        paragraph = heading.find_next("p")
        if paragraph and paragraph.get_text(strip=True):
            return paragraph.get_text(" ", strip=True)
    meta = soup.find("meta", attrs={"name": "description"})
    if meta and meta.get("content"):
        return str(meta["content"]).strip()
    return ""
