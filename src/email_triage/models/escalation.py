"""Escalation models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from email_triage.models.rules import TriggeredRule


class ActionResult(BaseModel):
    """Outcome of executing one escalation action."""

    action: str
    success: bool
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class EscalationRecord(BaseModel):
    """Append-only audit entry written once per escalation."""

    id: str
    tenant_id: str
    email_ref: str
    reason: str
    rule_id: str | None = None
    priority: int
    triggered_rules: list[TriggeredRule] = Field(default_factory=list)
    results_by_action: list[ActionResult] = Field(default_factory=list)
    created_at: datetime


class EscalationResult(BaseModel):
    """What the escalation engine did for one email."""

    escalated: bool
    reason: str = ""
    triggered_rules: list[TriggeredRule] = Field(default_factory=list)
    results: list[ActionResult] = Field(default_factory=list)
    highest_priority: int | None = None
    record_id: str | None = None


class NotificationResult(BaseModel):
    """Outcome of one notification channel send."""

    success: bool
    channel: str = ""
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class EscalationStats(BaseModel):
    """Escalation counts for a timeframe."""

    total: int = 0
    by_reason: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )
    by_hour: dict[int, int] = Field(default_factory=dict)
    average_per_day: float = 0.0
