import json

from app.clients.crunchbase import CrunchbaseError
from app.clients.tavily import SearchHit
from app.models.company import CompanyRecord, TeamMember, TeamMemberSource
from app.models.queue import Priority, QueueItemType
from pipelines.profiling import CompanyProfiler, parse_about_description, parse_team_section
from pipelines.queue import InMemoryVerificationQueue
from tests.helpers.fakes import StubCompanySource, StubFetcher, StubInference, StubSearch, no_sleep
from tests.helpers.metrics_stub import StubMetrics

FOUNDER = TeamMember(name="Jane Doe", title="CEO", source=TeamMemberSource.STRUCTURED_DB)
COMPLETE_RECORD = CompanyRecord(
    website="https://acmecyber.io",
    founded_year=2021,
    employee_range="11-50",
    location="Austin, Texas",
    description="Cloud security posture management.",
    url="https://www.crunchbase.com/organization/acme-cyber",
    team_members=[FOUNDER],
)
TEAM_PAGE = """
<html><head><meta name="description" content="Acme Cyber protects cloud workloads."></head>
<body>
  <section>
    <h2>Our Leadership Team</h2>
    <div><h3>Jane Doe</h3><p>Chief Executive Officer</p></div>
    <div><h3>John Smith</h3><p>CTO and Co-founder</p></div>
  </section>
  <section><h2>About Us</h2><p>Acme Cyber secures multi-cloud environments.</p></section>
</body></html>
"""


def _profiler(**kwargs):
    kwargs.setdefault("queue", InMemoryVerificationQueue())
    kwargs.setdefault("metrics_reporter", StubMetrics())
    return CompanyProfiler(sleep=no_sleep, **kwargs)


def test_complete_structured_record_stops_after_tier_one():
    search = StubSearch()
    profiler = _profiler(primary_source=StubCompanySource(COMPLETE_RECORD), search_client=search)

    profile = profiler.profile_company("Acme Cyber")

    assert profile.is_complete
    assert profile.crunchbase_url == COMPLETE_RECORD.url
    assert profile.team_members[0].source is TeamMemberSource.STRUCTURED_DB
    assert search.queries == []
    assert len(profiler.queue) == 0


def test_secondary_source_fills_only_empty_fields():
    primary = CompanyRecord(website="https://acmecyber.io", founded_year=2021, team_members=[FOUNDER])
    secondary = CompanyRecord(
        website="https://other.example",
        employee_range="51-200",
        location="Austin, Texas",
        description="Secondary description.",
        angellist_url="https://wellfound.com/company/acme",
        team_members=[
            TeamMember(name="jane doe", title="CEO", source=TeamMemberSource.STRUCTURED_DB),
            TeamMember(name="John Smith", title="CTO", source=TeamMemberSource.STRUCTURED_DB),
        ],
    )
    profiler = _profiler(primary_source=StubCompanySource(primary), secondary_source=StubCompanySource(secondary))

    profile = profiler.profile_company("Acme Cyber")

    assert profile.website == "https://acmecyber.io"
    assert profile.employee_range == "51-200"
    assert profile.angellist_url == "https://wellfound.com/company/acme"
    assert [member.name for member in profile.team_members] == ["Jane Doe", "John Smith"]
    assert profile.is_complete


def test_tier_two_fills_gaps_without_overwriting_tier_one():
    primary = CompanyRecord(
        website="https://acmecyber.io",
        founded_year=2021,
        employee_range="11-50",
        location="Austin, Texas",
        description="From the structured database.",
    )
    search = StubSearch(
        {
            "founders": [SearchHit(url="https://news.example/acme", title="Acme founders", snippet="Jane Doe founded Acme Cyber")],
            "funding announcement": [
                SearchHit(url="https://techcrunch.com/acme", title="TC", snippet="Acme Cyber raises a Series A.")
            ],
        }
    )
    inference = StubInference(
        [("founders and executives", json.dumps({"founders": [{"name": "Jane Doe", "title": "CEO"}]}))]
    )
    fetcher = StubFetcher({"https://acmecyber.io": TEAM_PAGE})
    profiler = _profiler(
        primary_source=StubCompanySource(primary),
        search_client=search,
        inference_client=inference,
        fetcher=fetcher,
    )

    profile = profiler.profile_company("Acme Cyber")

    assert profile.description == "From the structured database."
    assert [member.name for member in profile.team_members] == ["Jane Doe"]
    assert profile.team_members[0].source is TeamMemberSource.WEB_SEARCH
    assert profile.is_complete
    assert len(profiler.queue) == 0


def test_tier_two_uses_search_and_website_for_missing_description_and_team():
    primary = CompanyRecord(website="https://acmecyber.io", founded_year=2021, employee_range="11-50", location="Austin")
    search = StubSearch(
        {"funding announcement": [SearchHit(url="https://techcrunch.com/acme", title="TC", snippet="Unrelated text")]}
    )
    profiler = _profiler(
        primary_source=StubCompanySource(primary),
        search_client=search,
        fetcher=StubFetcher({"https://acmecyber.io": TEAM_PAGE}),
    )

    profile = profiler.profile_company("Acme Cyber")

    assert profile.description == "Acme Cyber secures multi-cloud environments."
    assert [member.name for member in profile.team_members] == ["Jane Doe", "John Smith"]
    assert all(member.source is TeamMemberSource.WEBSITE for member in profile.team_members)


def test_tier_three_queues_manual_tasks_for_remaining_gaps():
    queue = InMemoryVerificationQueue()
    profiler = _profiler(primary_source=StubCompanySource(None), search_client=StubSearch(), queue=queue)

    profile = profiler.profile_company("Acme Cyber")

    assert profile is not None
    assert not profile.is_complete
    items = {item.data["task"]: item for item in queue.list_sorted()}
    assert set(items) == {"missing_founders", "verify_employee_count", "verify_location", "comprehensive_review"}
    assert all(item.type is QueueItemType.COMPANY_PROFILING for item in items.values())
    assert {item.linkedin_url for item in items.values()} == {"https://linkedin.com/company/acme-cyber"}
    assert items["missing_founders"].priority is Priority.HIGH
    assert items["verify_employee_count"].priority is Priority.MEDIUM
    assert items["verify_location"].priority is Priority.MEDIUM
    assert items["comprehensive_review"].priority is Priority.HIGH
    assert items["comprehensive_review"].reason == (
        "Review the LinkedIn company page and update team, employee count, location"
    )
    assert profiler.status()["tasks_created"] == 4


def test_single_gap_gets_one_task_with_linkedin_url():
    queue = InMemoryVerificationQueue()
    record = COMPLETE_RECORD.model_copy(update={"location": ""})
    profiler = _profiler(primary_source=StubCompanySource(record), search_client=StubSearch(), queue=queue)

    profiler.profile_company("Acme Cyber")

    items = queue.list_sorted()
    assert [item.data["task"] for item in items] == ["verify_location"]
    assert items[0].linkedin_url == "https://linkedin.com/company/acme-cyber"


def test_profiling_twice_gives_same_completeness():
    primary = CompanyRecord(website="https://acmecyber.io", founded_year=2021, location="Austin, Texas")
    profiler = _profiler(
        primary_source=StubCompanySource(primary),
        search_client=StubSearch(),
        fetcher=StubFetcher({"https://acmecyber.io": TEAM_PAGE}),
    )

    first = profiler.profile_company("Acme Cyber")
    second = profiler.profile_company("Acme Cyber")

    assert first.is_complete == second.is_complete
    assert first.missing_fields() == second.missing_fields() == ["employee_range"]


def test_provider_errors_are_tolerated():
    profiler = _profiler(
        primary_source=StubCompanySource(error=CrunchbaseError("down")),
        secondary_source=StubCompanySource(COMPLETE_RECORD),
    )

    profile = profiler.profile_company("Acme Cyber")

    assert profile is not None
    assert profile.is_complete


def test_unexpected_error_returns_none():
    metrics = StubMetrics()
    profiler = _profiler(primary_source=StubCompanySource(error=KeyError("boom")), metrics_reporter=metrics)

    assert profiler.profile_company("Acme Cyber") is None
    assert profiler.status()["failed"] == 1
    assert metrics.counted("profiling.failed") == 1


def test_parse_helpers_read_team_and_about_sections():
    members = parse_team_section(TEAM_PAGE)

    assert [(member.name, member.title) for member in members] == [
        ("Jane Doe", "Chief Executive Officer"),
        ("John Smith", "CTO and Co-founder"),
    ]
    assert parse_about_description(TEAM_PAGE) == "Acme Cyber secures multi-cloud environments."
    assert parse_about_description("<html><body><p>nothing</p></body></html>") == ""
