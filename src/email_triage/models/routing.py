"""Routing decision models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class RoutingAction(str, Enum):
    """Primary action chosen for an email."""

    AUTO_REPLY = "auto_reply"
    ESCALATE = "escalate"
    QUEUE_FOR_REVIEW = "queue_for_review"
    NOTIFY_IMMEDIATELY = "notify_immediately"
    DEFAULT = "default"


class RoutingDecision(BaseModel):
    """How one email should be handled."""

    action: RoutingAction = Field(description="Primary action")
    priority: int = Field(ge=1, le=100, description="Queue priority, higher is more urgent")
    auto_reply: bool = Field(default=False)
    escalate: bool = Field(default=False)
    notify_immediately: bool = Field(default=False)
    max_response_time_minutes: int = Field(description="Response window in minutes")
    routing_reason: str = Field(default="")
    outside_business_hours: bool = Field(default=False)
    next_business_open: datetime | None = Field(default=None)


class RoutingStats(BaseModel):
    """Summary of a batch of routing decisions."""

    total: int = 0
    actions: dict[str, int] = Field(default_factory=dict)
    priorities: dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )
    auto_replies: int = 0
    escalations: int = 0
    average_priority: float = 0.0
