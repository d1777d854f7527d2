"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, status

from pipelines.orchestrator import WorkflowOrchestrator, build_orchestrator

_ORCHESTRATOR: WorkflowOrchestrator | None = None


def get_orchestrator() -> WorkflowOrchestrator:
    """Singleton accessor used by API routes."""
    global _ORCHESTRATOR  # noqa: PLW0603
    if _ORCHESTRATOR is None:
        try:
            _ORCHESTRATOR = build_orchestrator()
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _ORCHESTRATOR


def shutdown_orchestrator() -> None:
    global _ORCHESTRATOR  # noqa: PLW0603
    if _ORCHESTRATOR is not None:
        _ORCHESTRATOR.close()
        _ORCHESTRATOR = None
