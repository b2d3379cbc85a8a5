"""Queue item models and lifecycle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class QueueStatus(str, Enum):
    """Queue item lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING_REVIEW = "pending_review"
    PAUSED = "paused"


# Legal lifecycle transitions. COMPLETED is terminal; PENDING_REVIEW only
# leaves through manual resolution.
ALLOWED_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.PENDING: frozenset(
        {QueueStatus.PROCESSING, QueueStatus.PENDING_REVIEW, QueueStatus.PAUSED}
    ),
    QueueStatus.PROCESSING: frozenset(
        {
            QueueStatus.COMPLETED,
            QueueStatus.FAILED,
            QueueStatus.PENDING,
            QueueStatus.PENDING_REVIEW,
        }
    ),
    QueueStatus.FAILED: frozenset({QueueStatus.PENDING}),
    QueueStatus.PAUSED: frozenset({QueueStatus.PENDING}),
    QueueStatus.PENDING_REVIEW: frozenset({QueueStatus.COMPLETED}),
    QueueStatus.COMPLETED: frozenset(),
}


def can_transition(current: QueueStatus, target: QueueStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class QueueItem(BaseModel):
    """One email's processing lifecycle record."""

    id: str = Field(description="Queue item ID")
    tenant_id: str = Field(description="Owning tenant")
    email_ref: str = Field(description="ID of the queued email")
    from_address: str = Field(default="", description="Sender")
    to: str = Field(default="", description="Recipient")
    subject: str = Field(default="", description="Subject")
    body: str = Field(default="", description="Body")
    provider: str = Field(default="unknown", description="Mail provider")
    priority: int = Field(default=50, description="Higher is more urgent")
    status: QueueStatus = Field(default=QueueStatus.PENDING, description="Lifecycle state")
    retry_count: int = Field(default=0, description="Failures so far")
    max_retries: int = Field(default=3, description="Failures allowed before giving up")
    scheduled_for: datetime = Field(description="Not eligible for processing before this time")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Classification, routing, ...")
    result: dict[str, Any] | None = Field(default=None, description="Final outcome payload")
    failure_reason: str | None = Field(default=None, description="Last failure message")
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)
    processing_started_at: datetime | None = Field(default=None)
    processing_completed_at: datetime | None = Field(default=None)


class QueueStats(BaseModel):
    """Aggregate queue statistics for one tenant (or all tenants)."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    priorities: dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )
    oldest_pending: datetime | None = None
    average_processing_ms: float = 0.0
