"""Workflow run records returned by the orchestrator."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.models.company import CompanyProfile
from app.models.funding import AnalysisResult


class WorkflowItemStatus(str, Enum):
    COMPLETE = "complete"
    MANUAL_REVIEW_REQUIRED = "manual_review_required"


class WorkflowItem(BaseModel):
    """One funding event after verification (and profiling when approved)."""

    status: WorkflowItemStatus
    analysis: AnalysisResult
    profile: CompanyProfile | None = None
    queue_item_id: str | None = None

    model_config = ConfigDict(frozen=True)


class WorkflowResult(BaseModel):
    success: bool
    processed_count: int = Field(default=0, ge=0)
    verified_count: int = Field(default=0, ge=0)
    manual_review_count: int = Field(default=0, ge=0)
    results: list[WorkflowItem] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    execution_time_ms: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)
