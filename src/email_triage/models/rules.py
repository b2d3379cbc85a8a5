"""Business rule models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class RuleCondition(str, Enum):
    """Predicates a tenant can attach a rule to."""

    ALL_EMAILS = "all_emails"
    CATEGORY = "category"
    URGENCY = "urgency"
    SENTIMENT = "sentiment"
    HIGH_URGENCY = "high_urgency"
    COMPLAINT_DETECTED = "complaint_detected"
    SENTIMENT_NEGATIVE = "sentiment_negative"
    EMERGENCY_KEYWORDS = "emergency_keywords"
    KEYWORD_MATCH = "keyword_match"
    MANAGER_REQUIRED = "manager_required"
    AFTER_HOURS = "after_hours"
    CUSTOMER_VIP = "customer_vip"


# Older rule rows use these names for the exact-match conditions.
CONDITION_ALIASES: dict[str, RuleCondition] = {
    "category_match": RuleCondition.CATEGORY,
    "urgency_level": RuleCondition.URGENCY,
}

VALUE_CONDITIONS: frozenset[RuleCondition] = frozenset(
    {RuleCondition.CATEGORY, RuleCondition.URGENCY, RuleCondition.SENTIMENT}
)


class EscalationAction(str, Enum):
    """Side-effecting actions a triggered rule can request."""

    ESCALATE = "escalate"
    NOTIFY_MANAGER = "notify_manager"
    HIGH_PRIORITY = "high_priority"
    IMMEDIATE_RESPONSE = "immediate_response"
    CREATE_TICKET = "create_ticket"
    SEND_SMS = "send_sms"
    CALL_CUSTOMER = "call_customer"
    AUTO_REPLY = "auto_reply"


class RuleDefinition(BaseModel):
    """A tenant-configured business rule."""

    id: str = Field(description="Rule ID")
    tenant_id: str = Field(description="Owning tenant")
    condition: str = Field(description="Condition name (see RuleCondition)")
    value: str | None = Field(default=None, description="Comparison value for exact-match conditions")
    action: str = Field(description="Action name (see EscalationAction)")
    priority: int = Field(default=1, description="1 (first) to 10")
    description: str = Field(default="", description="Human-readable explanation")
    enabled: bool = Field(default=True)
    created_at: datetime | None = Field(default=None)


class TriggeredRule(BaseModel):
    """A rule that matched one email. Never persisted on its own."""

    rule_id: str
    condition: str
    action: str
    priority: int
    description: str = ""
