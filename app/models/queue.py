"""Verification queue records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class QueueItemType(str, Enum):
    DATA_VERIFICATION = "data_verification"
    COMPANY_PROFILING = "company_profiling"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class VerificationQueueItem(BaseModel):
    """Backlog entry awaiting a human decision."""

    id: str = Field(default_factory=_new_id)
    type: QueueItemType
    company_name: str
    data: dict[str, Any] = Field(default_factory=dict)
    reason: str
    priority: Priority = Priority.MEDIUM
    linkedin_url: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)
