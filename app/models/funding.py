"""Domain models for funding extraction and verification."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

MANUAL_REVIEW_MARKER = "Manual review required"


class ExtractedEntities(BaseModel):
    """Raw NER output returned by the inference service, kept for audit."""

    organizations: list[str] = Field(default_factory=list)
    money: list[str] = Field(default_factory=list)
    funding_stage: list[str] = Field(default_factory=list)
    technology: list[str] = Field(default_factory=list)
    confidence: float = 0.0

    model_config = ConfigDict(frozen=True)


class FundingDraft(BaseModel):
    """Unverified funding event extracted from a single text block."""

    company_name: str = ""
    theme: str = ""
    amount: int = Field(default=0, ge=0)
    funding_stage: str = ""
    lead_investor: str = ""
    all_investors: tuple[str, ...] = ()
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    raw_text: str = ""
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)

    model_config = ConfigDict(frozen=True)


class VerificationSource(BaseModel):
    """A corroborating document found during source discovery."""

    url: str
    title: str
    content: str
    reliability: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)


class ConfidenceScore(BaseModel):
    """Per-field confidence; overall is always the mean of the five field scores."""

    company_name: float = Field(..., ge=0.0, le=1.0)
    amount: float = Field(..., ge=0.0, le=1.0)
    funding_stage: float = Field(..., ge=0.0, le=1.0)
    lead_investor: float = Field(..., ge=0.0, le=1.0)
    theme: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @computed_field  # type: ignore[misc]
    @property
    def overall(self) -> float:
        scores = self.field_scores()
        return sum(scores.values()) / len(scores)

    def field_scores(self) -> dict[str, float]:
        return {
            "company_name": self.company_name,
            "amount": self.amount,
            "funding_stage": self.funding_stage,
            "lead_investor": self.lead_investor,
            "theme": self.theme,
        }

    @classmethod
    def uniform(cls, value: float) -> "ConfidenceScore":
        return cls(
            company_name=value,
            amount=value,
            funding_stage=value,
            lead_investor=value,
            theme=value,
        )


class CandidateValue(BaseModel):
    """One observed value for a disputed field."""

    value: str
    sources: int
    consensus: float

    model_config = ConfigDict(frozen=True)


class Discrepancy(BaseModel):
    """Field where sources disagree without a confident majority."""

    field: str
    values: list[CandidateValue]
    recommendation: str

    model_config = ConfigDict(frozen=True)

    @property
    def requires_manual_review(self) -> bool:
        return self.recommendation.startswith(MANUAL_REVIEW_MARKER)


class AnalysisResult(BaseModel):
    """Terminal artifact of the verifier."""

    confidence: ConfidenceScore
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    sources: list[VerificationSource] = Field(default_factory=list)
    source_count: int = Field(default=0, ge=0)
    final_data: FundingDraft
    requires_manual_review: bool
    review_reason: str | None = None

    model_config = ConfigDict(frozen=True)

    @computed_field  # type: ignore[misc]
    @property
    def verified(self) -> bool:
        return not self.requires_manual_review
