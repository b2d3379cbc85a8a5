"""Escalation engine.

Executes the actions of every triggered rule for one email and writes a
single append-only audit record summarising what happened. Action failures
are captured per action; a failure to write the audit record is logged and
never surfaces to the caller.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Sequence

import structlog

from email_triage.escalation.actions import EscalationActionExecutor
from email_triage.exceptions import PersistenceError
from email_triage.models.classification import Classification
from email_triage.models.email import Email
from email_triage.models.escalation import (
    ActionResult,
    EscalationRecord,
    EscalationResult,
    EscalationStats,
)
from email_triage.models.pipeline import TIMEFRAME_HOURS
from email_triage.models.routing import RoutingDecision
from email_triage.models.rules import EscalationAction, TriggeredRule
from email_triage.repository.base import new_id
from email_triage.repository.escalation_repository import EscalationRepository
from email_triage.rules.engine import BusinessRulesEngine
from email_triage.utils import utcnow

logger = structlog.get_logger()

MANUAL_RULE_ID = "manual"
ROUTING_RULE_ID = "routing"


def priority_label(priority: int) -> str:
    if priority >= 7:
        return "high"
    if priority >= 4:
        return "medium"
    return "low"


class EscalationEngine:
    def __init__(
        self,
        rules_engine: BusinessRulesEngine,
        executor: EscalationActionExecutor,
        repository: EscalationRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.rules_engine = rules_engine
        self.executor = executor
        self.repository = repository
        self._clock = clock

    async def process_escalation(
        self,
        email: Email,
        tenant_id: str,
        classification: Classification | None = None,
        routing: RoutingDecision | None = None,
        triggered_rules: Sequence[TriggeredRule] | None = None,
    ) -> EscalationResult:
        """Escalate an email according to its triggered rules.

        Args:
            email: The email to escalate.
            tenant_id: Owning tenant.
            classification: Classification passed to rule evaluation and handlers.
            routing: Routing decision, recorded in the log context only.
            triggered_rules: Rules already evaluated by the caller. When None the
                tenant's rules are evaluated here.

        Returns:
            An `EscalationResult`; `escalated` is False when no rule triggered.
        """
        if triggered_rules is None:
            triggered_rules = self.rules_engine.evaluate_rules(email, tenant_id, classification)

        rules = list(triggered_rules)
        if not rules:
            return EscalationResult(escalated=False, reason="No escalation rules triggered")

        reason = "; ".join(r.description for r in rules)
        logger.info(
            "escalation_started",
            email_id=email.id,
            tenant_id=tenant_id,
            rule_count=len(rules),
            routing_action=routing.action.value if routing else None,
        )
        return await self._run(email, tenant_id, rules, reason, classification)

    async def manual_escalation(
        self,
        email: Email,
        tenant_id: str,
        reason: str,
        priority: int = 5,
    ) -> EscalationResult:
        rule = TriggeredRule(
            rule_id=MANUAL_RULE_ID,
            condition="manual_escalation",
            action=EscalationAction.ESCALATE.value,
            priority=priority,
            description=reason,
        )
        logger.info("manual_escalation", email_id=email.id, tenant_id=tenant_id, priority=priority)
        return await self._run(email, tenant_id, [rule], reason)

    async def routing_escalation(
        self,
        email: Email,
        tenant_id: str,
        routing: RoutingDecision,
        classification: Classification | None = None,
    ) -> EscalationResult:
        """Escalate because the router asked for it and no tenant rule triggered."""

        rule = TriggeredRule(
            rule_id=ROUTING_RULE_ID,
            condition="routing_decision",
            action=EscalationAction.ESCALATE.value,
            priority=max(1, min(10, routing.priority // 10)),
            description=routing.routing_reason or "Escalation requested by routing",
        )
        return await self._run(email, tenant_id, [rule], rule.description, classification)

    async def _run(
        self,
        email: Email,
        tenant_id: str,
        rules: list[TriggeredRule],
        reason: str,
        classification: Classification | None = None,
    ) -> EscalationResult:
        results: list[ActionResult] = []
        for rule in rules:
            results.append(await self.executor.execute(rule, email, tenant_id, classification))

        highest = max(r.priority for r in rules)
        record = EscalationRecord(
            id=new_id(),
            tenant_id=tenant_id,
            email_ref=email.id,
            reason=reason,
            rule_id=rules[0].rule_id,
            priority=highest,
            triggered_rules=rules,
            results_by_action=results,
            created_at=self._clock(),
        )

        record_id: str | None = None
        try:
            record_id = self.repository.insert_record(record)
        except PersistenceError as e:
            logger.error("escalation_record_failed", email_id=email.id, tenant_id=tenant_id, error=str(e))

        failed = [r.action for r in results if not r.success]
        logger.info(
            "email_escalated",
            email_id=email.id,
            tenant_id=tenant_id,
            actions=[r.action for r in results],
            failed_actions=failed,
            highest_priority=highest,
        )
        return EscalationResult(
            escalated=True,
            reason=reason,
            triggered_rules=rules,
            results=results,
            highest_priority=highest,
            record_id=record_id,
        )

    async def process_batch_escalations(
        self,
        emails: Sequence[Email],
        tenant_id: str,
        classifications: Sequence[Classification | None] | None = None,
    ) -> list[EscalationResult]:
        results: list[EscalationResult] = []
        for i, email in enumerate(emails):
            classification = classifications[i] if classifications and i < len(classifications) else None
            results.append(await self.process_escalation(email, tenant_id, classification))
        return results

    def get_escalation_stats(self, tenant_id: str, timeframe: str = "24h") -> EscalationStats:
        hours = TIMEFRAME_HOURS.get(timeframe, TIMEFRAME_HOURS["24h"])
        since = self._clock() - timedelta(hours=hours)
        records = self.repository.list_records(tenant_id, since=since)

        stats = EscalationStats(total=len(records))
        stats.by_reason = dict(Counter(r.reason for r in records))
        for record in records:
            stats.by_priority[priority_label(record.priority)] += 1
            hour = record.created_at.hour
            stats.by_hour[hour] = stats.by_hour.get(hour, 0) + 1

        stats.average_per_day = stats.total / (hours / 24)
        return stats
