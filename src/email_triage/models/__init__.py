"""Data models for the email triage pipeline.

This package contains Pydantic models for data validation and serialization.
"""

from email_triage.models.classification import (
    Classification,
    ClassificationMethod,
    EmailCategory,
    Sentiment,
    UrgencyLevel,
)
from email_triage.models.email import Email
from email_triage.models.escalation import (
    ActionResult,
    EscalationRecord,
    EscalationResult,
    EscalationStats,
    NotificationResult,
)
from email_triage.models.pipeline import PipelineResult, PipelineStats
from email_triage.models.queue import QueueItem, QueueStats, QueueStatus
from email_triage.models.responses import GeneratedResponse, ResponseTemplate, StyleProfile
from email_triage.models.routing import RoutingAction, RoutingDecision, RoutingStats
from email_triage.models.rules import (
    EscalationAction,
    RuleCondition,
    RuleDefinition,
    TriggeredRule,
)
from email_triage.models.tenant import (
    BusinessContext,
    BusinessHours,
    DaySchedule,
    Manager,
    NotificationSettings,
    TenantSettings,
)

__all__ = [
    "ActionResult",
    "BusinessContext",
    "BusinessHours",
    "Classification",
    "ClassificationMethod",
    "DaySchedule",
    "Email",
    "EmailCategory",
    "EscalationAction",
    "EscalationRecord",
    "EscalationResult",
    "EscalationStats",
    "GeneratedResponse",
    "Manager",
    "NotificationResult",
    "NotificationSettings",
    "PipelineResult",
    "PipelineStats",
    "QueueItem",
    "QueueStats",
    "QueueStatus",
    "ResponseTemplate",
    "RoutingAction",
    "RoutingDecision",
    "RoutingStats",
    "RuleCondition",
    "RuleDefinition",
    "Sentiment",
    "StyleProfile",
    "TenantSettings",
    "TriggeredRule",
    "UrgencyLevel",
]
