import pytest
from pydantic import ValidationError

from app.models.company import CompanyProfile, TeamMember, TeamMemberSource
from app.models.funding import AnalysisResult, ConfidenceScore, Discrepancy, FundingDraft
from app.models.queue import Priority, QueueItemType, VerificationQueueItem


def test_confidence_overall_is_mean_of_fields():
    score = ConfidenceScore(company_name=0.9, amount=0.5, funding_stage=0.7, lead_investor=0.1, theme=0.3)

    assert score.overall == pytest.approx(0.5)
    assert score.model_dump()["overall"] == pytest.approx(0.5)


def test_funding_draft_is_immutable():
    draft = FundingDraft(company_name="Acme")

    with pytest.raises(ValidationError):
        draft.company_name = "Other"


def test_analysis_verified_mirrors_manual_review_flag():
    result = AnalysisResult(
        confidence=ConfidenceScore.uniform(0.9),
        final_data=FundingDraft(company_name="Acme"),
        requires_manual_review=False,
    )

    assert result.verified is True
    assert result.model_copy(update={"requires_manual_review": True}).verified is False


def test_discrepancy_manual_review_marker():
    manual = Discrepancy(field="funding_stage", values=[], recommendation="Manual review required - no clear consensus")
    majority = Discrepancy(field="funding_stage", values=[], recommendation="Use most common value: Series A")

    assert manual.requires_manual_review
    assert not majority.requires_manual_review


def test_priority_rank_and_queue_defaults():
    item = VerificationQueueItem(type=QueueItemType.COMPANY_PROFILING, company_name="Acme", reason="profiling failed")

    assert Priority.HIGH.rank > Priority.MEDIUM.rank > Priority.LOW.rank
    assert item.priority is Priority.MEDIUM
    assert item.id and item.created_at.tzinfo is not None


def test_company_profile_completeness_and_member_dedupe():
    profile = CompanyProfile(
        name="Acme",
        website="https://acme.io",
        founded_year=2020,
        employee_range="11-50",
        location="Austin",
    )
    assert profile.missing_fields() == ["description", "team"]

    added = profile.add_team_members(
        [
            TeamMember(name="Jane Doe", source=TeamMemberSource.WEBSITE),
            TeamMember(name="JANE DOE", source=TeamMemberSource.WEB_SEARCH),
        ]
    )
    profile.description = "Security"

    assert added == 1
    assert profile.is_complete
