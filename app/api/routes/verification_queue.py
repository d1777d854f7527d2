"""API endpoints for the human verification queue."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.dependencies import get_orchestrator
from app.models.queue import VerificationQueueItem
from pipelines.orchestrator import WorkflowOrchestrator

router = APIRouter()


class CompleteTaskRequest(BaseModel):
    updated_data: dict[str, Any] | None = None


@router.get("/verification-queue", response_model=list[VerificationQueueItem])
def list_queue(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)) -> list[VerificationQueueItem]:
    """Pending items, highest priority and newest first."""
    return orchestrator.get_verification_queue()


@router.post("/verification-queue/{item_id}/complete")
def complete_task(
    item_id: str,
    payload: CompleteTaskRequest | None = None,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    updated = payload.updated_data if payload else None
    if not orchestrator.complete_verification_task(item_id, updated):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Queue item not found.")
    return {"id": item_id, "completed": True}
