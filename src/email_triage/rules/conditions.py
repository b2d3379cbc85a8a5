"""Rule condition predicates.

Each predicate receives a `RuleContext` and returns whether the rule matches.
Predicates only read the email and classification; they never modify them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from email_triage.classification.patterns import compile_keyword
from email_triage.models.classification import (
    Classification,
    EmailCategory,
    Sentiment,
    UrgencyLevel,
)
from email_triage.models.email import Email
from email_triage.models.rules import CONDITION_ALIASES, RuleCondition
from email_triage.models.tenant import TenantSettings
from email_triage.routing.business_hours import is_open

HIGH_URGENCY_KEYWORDS = (
    "urgent",
    "asap",
    "emergency",
    "critical",
    "immediate",
    "help",
    "broken",
    "not working",
    "stopped",
    "failed",
    "down",
    "out of order",
)

BUSINESS_KEYWORDS = (
    "quote",
    "estimate",
    "pricing",
    "cost",
    "payment",
    "invoice",
    "schedule",
    "appointment",
    "booking",
    "availability",
    "warranty",
    "guarantee",
    "service",
    "repair",
    "maintenance",
)

MANAGER_KEYWORDS = (
    "manager",
    "supervisor",
    "complaint",
    "refund",
    "cancel",
    "lawsuit",
    "legal",
    "attorney",
    "better business bureau",
    "review",
    "yelp",
    "google review",
    "social media",
)

COMPLAINT_KEYWORDS = (
    "complaint",
    "complain",
    "unhappy",
    "dissatisfied",
    "disappointed",
    "poor service",
    "bad experience",
    "terrible",
    "awful",
    "horrible",
    "refund",
    "money back",
    "cancel",
    "dispute",
)

EMERGENCY_KEYWORDS = (
    "emergency",
    "urgent",
    "asap",
    "immediately",
    "right now",
    "can't wait",
    "critical",
    "life threatening",
    "dangerous",
    "flooding",
    "fire",
    "smoke",
    "gas leak",
    "electrical hazard",
)

NEGATIVE_KEYWORDS = (
    "angry",
    "frustrated",
    "upset",
    "mad",
    "furious",
    "disappointed",
    "terrible",
    "awful",
    "horrible",
    "worst",
    "hate",
    "disgusted",
)

# Used when a rule is created without an explicit priority.
DEFAULT_PRIORITIES: dict[RuleCondition, int] = {
    RuleCondition.EMERGENCY_KEYWORDS: 10,
    RuleCondition.HIGH_URGENCY: 9,
    RuleCondition.MANAGER_REQUIRED: 8,
    RuleCondition.CUSTOMER_VIP: 7,
    RuleCondition.COMPLAINT_DETECTED: 6,
    RuleCondition.AFTER_HOURS: 5,
    RuleCondition.SENTIMENT_NEGATIVE: 4,
    RuleCondition.KEYWORD_MATCH: 3,
    RuleCondition.CATEGORY: 3,
    RuleCondition.URGENCY: 3,
    RuleCondition.SENTIMENT: 3,
    RuleCondition.ALL_EMAILS: 1,
}


@dataclass(frozen=True)
class RuleContext:
    email: Email
    classification: Classification | None
    value: str | None
    tenant_settings: TenantSettings | None
    now: datetime

    @property
    def text(self) -> str:
        return self.email.text_for_analysis()


def resolve_condition(name: str) -> RuleCondition | None:
    """Map a stored condition name (including legacy aliases) to a RuleCondition."""

    key = (name or "").strip().lower()
    if key in CONDITION_ALIASES:
        return CONDITION_ALIASES[key]
    try:
        return RuleCondition(key)
    except ValueError:
        return None


def contains_any(text: str, keywords: tuple[str, ...] | list[str]) -> bool:
    return any(compile_keyword(k).regex.search(text) for k in keywords if k)


def _all_emails(ctx: RuleContext) -> bool:
    return True


def _field_equals(field: str) -> Callable[[RuleContext], bool]:
    def predicate(ctx: RuleContext) -> bool:
        if ctx.classification is None or not ctx.value:
            return False
        actual = getattr(ctx.classification, field)
        return actual.value == ctx.value.strip().lower()

    predicate.__name__ = f"_{field}_equals"
    return predicate


def _high_urgency(ctx: RuleContext) -> bool:
    if ctx.classification is not None:
        return ctx.classification.urgency in (UrgencyLevel.HIGH, UrgencyLevel.CRITICAL)
    return contains_any(ctx.text, HIGH_URGENCY_KEYWORDS)


def _complaint_detected(ctx: RuleContext) -> bool:
    if ctx.classification is not None:
        return ctx.classification.category == EmailCategory.COMPLAINT
    return contains_any(ctx.text, COMPLAINT_KEYWORDS)


def _sentiment_negative(ctx: RuleContext) -> bool:
    if ctx.classification is not None:
        return ctx.classification.sentiment == Sentiment.NEGATIVE
    return contains_any(ctx.text, NEGATIVE_KEYWORDS)


def _emergency_keywords(ctx: RuleContext) -> bool:
    return contains_any(ctx.text, EMERGENCY_KEYWORDS)


def _keyword_match(ctx: RuleContext) -> bool:
    if ctx.value:
        keywords = [k.strip().lower() for k in ctx.value.split(",") if k.strip()]
        return contains_any(ctx.text, keywords)
    return contains_any(ctx.text, BUSINESS_KEYWORDS)


def _manager_required(ctx: RuleContext) -> bool:
    return contains_any(ctx.text, MANAGER_KEYWORDS)


def _after_hours(ctx: RuleContext) -> bool:
    hours = ctx.tenant_settings.business_hours if ctx.tenant_settings else None
    return not is_open(hours, ctx.now)


def _customer_vip(ctx: RuleContext) -> bool:
    if ctx.tenant_settings is None:
        return False
    sender = ctx.email.sender_email()
    return bool(sender) and sender in {v.strip().lower() for v in ctx.tenant_settings.vip_customers}


CONDITIONS: dict[RuleCondition, Callable[[RuleContext], bool]] = {
    RuleCondition.ALL_EMAILS: _all_emails,
    RuleCondition.CATEGORY: _field_equals("category"),
    RuleCondition.URGENCY: _field_equals("urgency"),
    RuleCondition.SENTIMENT: _field_equals("sentiment"),
    RuleCondition.HIGH_URGENCY: _high_urgency,
    RuleCondition.COMPLAINT_DETECTED: _complaint_detected,
    RuleCondition.SENTIMENT_NEGATIVE: _sentiment_negative,
    RuleCondition.EMERGENCY_KEYWORDS: _emergency_keywords,
    RuleCondition.KEYWORD_MATCH: _keyword_match,
    RuleCondition.MANAGER_REQUIRED: _manager_required,
    RuleCondition.AFTER_HOURS: _after_hours,
    RuleCondition.CUSTOMER_VIP: _customer_vip,
}
