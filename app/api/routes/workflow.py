"""API endpoints for running the funding verification workflow."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_orchestrator
from app.models.workflow import WorkflowItem, WorkflowResult
from pipelines.extraction import ExtractionError
from pipelines.orchestrator import WorkflowOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class RunWorkflowRequest(BaseModel):
    texts: list[str] = Field(..., min_length=1, description="Raw funding announcements.")


class ProcessArticleRequest(BaseModel):
    text: str = Field(..., min_length=1)


@router.post("/workflow/run", response_model=WorkflowResult)
def run_workflow(
    payload: RunWorkflowRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> WorkflowResult:
    """Run a batch through extraction, verification and profiling."""
    return orchestrator.execute_complete_workflow(payload.texts)


@router.post("/articles/process", response_model=WorkflowItem)
def process_article(
    payload: ProcessArticleRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> WorkflowItem:
    try:
        return orchestrator.process_single_article(payload.text)
    except ExtractionError as exc:
        logger.error("workflow.api_error", extra={"code": exc.code})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.get("/workflow/stats")
def workflow_stats(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return orchestrator.get_workflow_stats()
