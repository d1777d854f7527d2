"""Cross-source reconciliation, confidence scoring and discrepancy detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from app.config import Settings
from app.models.funding import (
    MANUAL_REVIEW_MARKER,
    CandidateValue,
    ConfidenceScore,
    Discrepancy,
    FundingDraft,
)
from pipelines.normalize import (
    clean_investor_name,
    normalize_company_name,
    normalize_theme,
    parse_amount,
    standardize_funding_stage,
)


def _text(normalizer: Callable[[str], str]) -> Callable[[Any], str]:
    def _apply(value: Any) -> str:
        if value is None or isinstance(value, (list, dict)):
            return ""
        return normalizer(str(value))

    return _apply


@dataclass(frozen=True)
class FieldDescriptor:
    """One reconciled funding field.

    ``name`` is the attribute on FundingDraft/ConfidenceScore, ``payload_key`` the key in a
    re-extraction response and ``normalize`` maps a raw value to its canonical display form.
    """

    name: str
    payload_key: str
    normalize: Callable[[Any], Any]

    def key_for(self, value: Any) -> str | None:
        """Grouping key for a normalized value; None when the value is absent."""
        if value is None or value == "" or value == 0:
            return None
        return str(value).strip().lower() or None


VERIFIED_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("company_name", "companyName", _text(normalize_company_name)),
    FieldDescriptor("amount", "amount", parse_amount),
    FieldDescriptor("funding_stage", "fundingStage", _text(standardize_funding_stage)),
    FieldDescriptor("lead_investor", "leadInvestor", _text(clean_investor_name)),
    FieldDescriptor("theme", "theme", _text(normalize_theme)),
)


@dataclass(frozen=True)
class ScoringPolicy:
    """Tunable constants for confidence scoring and the review decision."""

    consensus_weight: float = 0.7
    reliability_weight: float = 0.3
    field_confidence_cap: float = 0.95
    missing_field_confidence: float = 0.1
    discrepancy_consensus_threshold: float = 0.7
    majority_consensus_threshold: float = 0.5
    confidence_threshold: float = 0.75
    min_sources_required: int = 2
    draft_reliability: float = 0.8

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringPolicy":
        return cls(
            consensus_weight=settings.consensus_weight,
            reliability_weight=settings.reliability_weight,
            field_confidence_cap=settings.field_confidence_cap,
            missing_field_confidence=settings.missing_field_confidence,
            discrepancy_consensus_threshold=settings.discrepancy_consensus_threshold,
            majority_consensus_threshold=settings.majority_consensus_threshold,
            confidence_threshold=settings.confidence_threshold,
            min_sources_required=settings.min_sources_required,
            draft_reliability=settings.draft_reliability,
        )


@dataclass(frozen=True)
class SourceObservation:
    """Normalized field values reported by one observation (the draft or a source)."""

    values: Mapping[str, Any]
    reliability: float
    url: str | None = None


@dataclass
class ValueTally:
    value: Any
    count: int = 0
    source_indices: list[int] = field(default_factory=list)
    reliability: float = 0.0


@dataclass
class FieldObservation:
    """Distinct values observed for one field, in first-seen order."""

    field: str
    tallies: dict[str, ValueTally] = field(default_factory=dict)

    def top(self) -> ValueTally | None:
        best: ValueTally | None = None
        for tally in self.tallies.values():
            if best is None or tally.count > best.count:
                best = tally
        return best


def observation_from_draft(draft: FundingDraft, *, reliability: float) -> SourceObservation:
    return SourceObservation(
        values={descriptor.name: getattr(draft, descriptor.name) for descriptor in VERIFIED_FIELDS},
        reliability=reliability,
    )


def observation_from_payload(
    payload: Mapping[str, Any],
    *,
    reliability: float,
    url: str | None = None,
) -> SourceObservation:
    values = {
        descriptor.name: descriptor.normalize(payload.get(descriptor.payload_key))
        for descriptor in VERIFIED_FIELDS
    }
    return SourceObservation(values=values, reliability=reliability, url=url)


def verify_field(observations: Sequence[SourceObservation], descriptor: FieldDescriptor) -> FieldObservation:
    """Group one field's values across all observations by lower-cased value."""
    result = FieldObservation(field=descriptor.name)
    for index, observation in enumerate(observations):
        value = observation.values.get(descriptor.name)
        key = descriptor.key_for(value)
        if key is None:
            continue
        tally = result.tallies.setdefault(key, ValueTally(value=value))
        tally.count += 1
        tally.source_indices.append(index)
        tally.reliability += observation.reliability
    return result


def reconcile(observations: Sequence[SourceObservation]) -> dict[str, FieldObservation]:
    return {descriptor.name: verify_field(observations, descriptor) for descriptor in VERIFIED_FIELDS}


def field_confidence(observation: FieldObservation, total_sources: int, policy: ScoringPolicy) -> float:
    top = observation.top()
    if top is None or total_sources <= 0:
        return policy.missing_field_confidence
    consensus = top.count / total_sources
    reliability = top.reliability / total_sources
    score = policy.consensus_weight * consensus + policy.reliability_weight * reliability
    return max(0.0, min(policy.field_confidence_cap, score))


def score_confidence(
    fields: Mapping[str, FieldObservation],
    total_sources: int,
    policy: ScoringPolicy,
) -> ConfidenceScore:
    return ConfidenceScore(
        **{
            descriptor.name: field_confidence(fields[descriptor.name], total_sources, policy)
            for descriptor in VERIFIED_FIELDS
        }
    )


def detect_discrepancies(
    fields: Mapping[str, FieldObservation],
    total_sources: int,
    policy: ScoringPolicy,
) -> list[Discrepancy]:
    discrepancies: list[Discrepancy] = []
    if total_sources <= 0:
        return discrepancies
    for descriptor in VERIFIED_FIELDS:
        tallies = list(fields[descriptor.name].tallies.values())
        if len(tallies) < 2:
            continue
        # sorted() is stable, so equal consensus keeps first-seen order
        ranked = sorted(tallies, key=lambda tally: tally.count, reverse=True)
        candidates = [
            CandidateValue(value=str(tally.value), sources=tally.count, consensus=tally.count / total_sources)
            for tally in ranked
        ]
        top = candidates[0]
        if top.consensus >= policy.discrepancy_consensus_threshold:
            continue
        if top.consensus > policy.majority_consensus_threshold:
            recommendation = f"Use most common value: {top.value}"
        else:
            recommendation = f"{MANUAL_REVIEW_MARKER} - no clear consensus"
        discrepancies.append(
            Discrepancy(field=descriptor.name, values=candidates, recommendation=recommendation)
        )
    return discrepancies


def review_decision(
    confidence: ConfidenceScore,
    source_count: int,
    discrepancies: Sequence[Discrepancy],
    policy: ScoringPolicy,
) -> tuple[bool, str | None]:
    """Return (requires_manual_review, reason); the reason names the first triggered rule."""
    if confidence.overall < policy.confidence_threshold:
        return True, f"Low confidence score: {confidence.overall:.2f}"
    if source_count < policy.min_sources_required:
        return True, f"Insufficient sources: {source_count} (minimum {policy.min_sources_required})"
    unresolved = [item for item in discrepancies if item.requires_manual_review]
    if unresolved:
        return True, f"Data discrepancies detected in {len(unresolved)} fields"
    return False, None


def build_final_data(draft: FundingDraft, fields: Mapping[str, FieldObservation]) -> FundingDraft:
    """Copy the draft with every field set to its most-observed value."""
    updates: dict[str, Any] = {}
    for descriptor in VERIFIED_FIELDS:
        top = fields[descriptor.name].top()
        if top is not None:
            updates[descriptor.name] = top.value
    lead = updates.get("lead_investor")
    if lead and lead != draft.lead_investor:
        others = tuple(name for name in draft.all_investors if name.lower() != str(lead).lower())
        updates["all_investors"] = (lead, *others)
    return draft.model_copy(update=updates)
