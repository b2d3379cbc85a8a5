"""Email router.

Maps a classification (plus tenant configuration) to one primary action and
a queue priority. The mapping is an ordered table; the first matching row
wins and anything unmatched is queued for human review. The router never
calls external services and never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

import structlog

from email_triage.exceptions import PersistenceError
from email_triage.models.classification import (
    Classification,
    EmailCategory,
    Sentiment,
    UrgencyLevel,
)
from email_triage.models.routing import RoutingAction, RoutingDecision, RoutingStats
from email_triage.models.tenant import TenantSettings
from email_triage.queue.email_queue import priority_band
from email_triage.routing.business_hours import is_open, next_open
from email_triage.tenants import TenantSettingsProvider
from email_triage.utils import utcnow

logger = structlog.get_logger()

REVIEW_PRIORITY = 50
REVIEW_WINDOW_MINUTES = 1440
CRITICAL_MIN_PRIORITY = 90

RESPONSE_WINDOWS: dict[UrgencyLevel, int] = {
    UrgencyLevel.CRITICAL: 15,
    UrgencyLevel.HIGH: 240,
    UrgencyLevel.NORMAL: 1440,
    UrgencyLevel.LOW: 2880,
}

_URGENCY_MODIFIERS = {
    UrgencyLevel.CRITICAL: 40,
    UrgencyLevel.HIGH: 25,
    UrgencyLevel.NORMAL: 0,
    UrgencyLevel.LOW: -15,
}
_CATEGORY_MODIFIERS = {
    EmailCategory.URGENT: 30,
    EmailCategory.COMPLAINT: 20,
    EmailCategory.APPOINTMENT: 10,
    EmailCategory.INQUIRY: 5,
    EmailCategory.FOLLOWUP: 0,
    EmailCategory.GENERAL: -5,
}
_SENTIMENT_MODIFIERS = {
    Sentiment.NEGATIVE: 15,
    Sentiment.NEUTRAL: 0,
    Sentiment.POSITIVE: -5,
}


def calculate_priority(classification: Classification) -> int:
    priority = (
        50
        + _URGENCY_MODIFIERS.get(classification.urgency, 0)
        + _CATEGORY_MODIFIERS.get(classification.category, 0)
        + _SENTIMENT_MODIFIERS.get(classification.sentiment, 0)
    )
    return max(1, min(100, priority))


@dataclass(frozen=True)
class RouteRule:
    """One row of the routing table."""

    name: str
    matches: Callable[[Classification], bool]
    action: RoutingAction
    auto_reply: bool
    escalate: bool
    notify: Callable[[Classification], bool]


def _never(_: Classification) -> bool:
    return False


def _always(_: Classification) -> bool:
    return True


ROUTING_TABLE: tuple[RouteRule, ...] = (
    RouteRule(
        name="critical_urgency",
        matches=lambda c: c.urgency == UrgencyLevel.CRITICAL,
        action=RoutingAction.NOTIFY_IMMEDIATELY,
        auto_reply=True,
        escalate=True,
        notify=_always,
    ),
    RouteRule(
        name="urgent_category",
        matches=lambda c: c.category == EmailCategory.URGENT,
        action=RoutingAction.ESCALATE,
        auto_reply=True,
        escalate=True,
        notify=_always,
    ),
    RouteRule(
        name="complaint",
        matches=lambda c: c.category == EmailCategory.COMPLAINT,
        action=RoutingAction.ESCALATE,
        auto_reply=True,
        escalate=True,
        notify=lambda c: c.urgency in (UrgencyLevel.HIGH, UrgencyLevel.CRITICAL)
        or c.sentiment == Sentiment.NEGATIVE,
    ),
    RouteRule(
        name="routine_request",
        matches=lambda c: c.category
        in (EmailCategory.INQUIRY, EmailCategory.APPOINTMENT, EmailCategory.FOLLOWUP)
        and c.urgency in (UrgencyLevel.NORMAL, UrgencyLevel.HIGH),
        action=RoutingAction.AUTO_REPLY,
        auto_reply=True,
        escalate=False,
        notify=_never,
    ),
)


def review_decision(reason: str = "No specific routing rule matched") -> RoutingDecision:
    return RoutingDecision(
        action=RoutingAction.QUEUE_FOR_REVIEW,
        priority=REVIEW_PRIORITY,
        auto_reply=False,
        escalate=False,
        notify_immediately=False,
        max_response_time_minutes=REVIEW_WINDOW_MINUTES,
        routing_reason=reason,
    )


def routing_reason(classification: Classification, rule_name: str) -> str:
    reasons: list[str] = []
    if classification.urgency in (UrgencyLevel.CRITICAL, UrgencyLevel.HIGH):
        reasons.append(f"{classification.urgency.value} urgency")
    if classification.category != EmailCategory.GENERAL:
        reasons.append(f"{classification.category.value} email")
    if classification.sentiment == Sentiment.NEGATIVE:
        reasons.append("negative sentiment")
    detail = ", ".join(reasons) if reasons else "standard processing"
    return f"{rule_name}: {detail}"


class EmailRouter:
    """Decide the primary action and priority for classified emails."""

    def __init__(
        self,
        tenant_settings: TenantSettingsProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
        table: Iterable[RouteRule] = ROUTING_TABLE,
    ) -> None:
        self.tenant_settings = tenant_settings or TenantSettingsProvider()
        self._clock = clock
        self.table = tuple(table)

    def _load_tenant_settings(self, tenant_id: str) -> TenantSettings:
        try:
            return self.tenant_settings.get(tenant_id)
        except PersistenceError as e:
            logger.warning("routing_tenant_settings_unavailable", tenant_id=tenant_id, error=str(e))
            return TenantSettings()

    def _base_decision(self, classification: Classification) -> RoutingDecision:
        for rule in self.table:
            if not rule.matches(classification):
                continue

            priority = calculate_priority(classification)
            if rule.action == RoutingAction.NOTIFY_IMMEDIATELY:
                priority = max(CRITICAL_MIN_PRIORITY, priority)

            return RoutingDecision(
                action=rule.action,
                priority=priority,
                auto_reply=rule.auto_reply,
                escalate=rule.escalate,
                notify_immediately=rule.notify(classification),
                max_response_time_minutes=RESPONSE_WINDOWS.get(classification.urgency, REVIEW_WINDOW_MINUTES),
                routing_reason=routing_reason(classification, rule.name),
            )

        return review_decision()

    def _apply_tenant_overrides(self, decision: RoutingDecision, tenant: TenantSettings) -> RoutingDecision:
        update: dict[str, object] = {}

        if tenant.escalate_all:
            update["escalate"] = True
            update["notify_immediately"] = True
            update["routing_reason"] = f"{decision.routing_reason}; tenant escalates all emails"

        if not tenant.notifications.auto_reply_enabled and decision.auto_reply:
            update["auto_reply"] = False
            if decision.action == RoutingAction.AUTO_REPLY:
                update["action"] = RoutingAction.QUEUE_FOR_REVIEW
                update["routing_reason"] = f"{decision.routing_reason}; auto-reply disabled by tenant"

        return decision.model_copy(update=update) if update else decision

    def _apply_business_hours(self, decision: RoutingDecision, tenant: TenantSettings) -> RoutingDecision:
        if decision.action == RoutingAction.NOTIFY_IMMEDIATELY or tenant.business_hours is None:
            return decision

        now = self._clock()
        if is_open(tenant.business_hours, now):
            return decision

        opening = next_open(tenant.business_hours, now)
        window = decision.max_response_time_minutes
        if opening is not None:
            minutes_until_open = int((opening - now).total_seconds() // 60)
            window += max(0, minutes_until_open)

        return decision.model_copy(
            update={
                "outside_business_hours": True,
                "next_business_open": opening,
                "max_response_time_minutes": window,
            }
        )

    def route(self, classification: Classification, tenant_id: str) -> RoutingDecision:
        """Route one classified email. Never raises."""

        try:
            tenant = self._load_tenant_settings(tenant_id)
            decision = self._base_decision(classification)
            decision = self._apply_tenant_overrides(decision, tenant)
            decision = self._apply_business_hours(decision, tenant)
        except Exception as e:  # noqa: BLE001
            logger.error("routing_failed", tenant_id=tenant_id, error=str(e))
            return review_decision("Routing failed; queued for review")

        logger.info(
            "email_routed",
            tenant_id=tenant_id,
            action=decision.action.value,
            priority=decision.priority,
            escalate=decision.escalate,
            notify_immediately=decision.notify_immediately,
        )
        return decision

    def route_batch(
        self, classifications: Iterable[Classification], tenant_id: str
    ) -> list[RoutingDecision]:
        return [self.route(c, tenant_id) for c in classifications]

    @staticmethod
    def get_routing_stats(decisions: Iterable[RoutingDecision]) -> RoutingStats:
        stats = RoutingStats()
        total_priority = 0
        for d in decisions:
            stats.total += 1
            stats.actions[d.action.value] = stats.actions.get(d.action.value, 0) + 1
            stats.priorities[priority_band(d.priority)] += 1
            stats.auto_replies += int(d.auto_reply)
            stats.escalations += int(d.escalate)
            total_priority += d.priority

        if stats.total:
            stats.average_priority = total_priority / stats.total
        return stats
