"""Pipeline outcome models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

from email_triage.models.classification import Classification
from email_triage.models.escalation import EscalationResult
from email_triage.models.queue import QueueStats
from email_triage.models.responses import GeneratedResponse
from email_triage.models.routing import RoutingDecision
from email_triage.models.rules import TriggeredRule

PipelineOutcome = Literal["complete", "fallback", "rejected"]

TIMEFRAME_HOURS: dict[str, int] = {"24h": 24, "7d": 168, "30d": 720}


class PipelineResult(BaseModel):
    """Single structured outcome for one processed email."""

    email_id: str = Field(description="Processed email ID")
    tenant_id: str = Field(description="Owning tenant")
    queue_id: str | None = Field(default=None, description="Queue item, when one was persisted")
    classification: Classification | None = Field(default=None)
    routing: RoutingDecision | None = Field(default=None)
    generated_response: GeneratedResponse | None = Field(default=None)
    final_response: str | None = Field(default=None, description="Reply text after templating")
    triggered_rules: list[TriggeredRule] = Field(default_factory=list)
    escalation: EscalationResult | None = Field(default=None)
    notification: dict[str, Any] | None = Field(default=None)
    pipeline: PipelineOutcome = Field(default="complete")
    error: str | None = Field(default=None)
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processing_time_ms: float = Field(default=0.0)


class PipelineStats(BaseModel):
    """Aggregate counts for one tenant over a timeframe."""

    tenant_id: str
    timeframe: str
    processed: int = 0
    completed: int = 0
    fallbacks: int = 0
    auto_replies: int = 0
    escalations: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_urgency: dict[str, int] = Field(default_factory=dict)
    by_action: dict[str, int] = Field(default_factory=dict)
    escalation_records: int = 0
    queue: QueueStats = Field(default_factory=QueueStats)
