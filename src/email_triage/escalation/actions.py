"""Escalation action handlers.

Every action name maps to exactly one handler. Unknown names raise
`UnknownActionError`, which the executor records as a failed result, so a
misconfigured rule never stops its sibling actions.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Awaitable, Callable

import structlog

from email_triage.escalation.notifications import (
    LoggingNotificationChannel,
    NotificationChannel,
    deliver,
)
from email_triage.exceptions import UnknownActionError
from email_triage.models.classification import Classification
from email_triage.models.email import Email
from email_triage.models.escalation import ActionResult
from email_triage.models.rules import EscalationAction, TriggeredRule
from email_triage.queue.email_queue import EmailQueue
from email_triage.repository.escalation_repository import EscalationRepository
from email_triage.repository.response_repository import ResponseRepository
from email_triage.tenants import TenantSettingsProvider
from email_triage.utils import to_iso, utcnow

logger = structlog.get_logger()

IMMEDIATE_RESPONSE_PRIORITY = 95
CALLBACK_DELAY = timedelta(minutes=30)


def ticket_priority(rule_priority: int) -> str:
    if rule_priority >= 7:
        return "high"
    if rule_priority >= 4:
        return "medium"
    return "low"


def raised_queue_priority(rule_priority: int) -> int:
    return min(100, max(90, rule_priority * 10))


class EscalationActionExecutor:
    """Run one triggered rule's action against the tenant's collaborators."""

    def __init__(
        self,
        repository: EscalationRepository,
        queue: EmailQueue,
        responses: ResponseRepository,
        tenant_settings: TenantSettingsProvider | None = None,
        notifier: NotificationChannel | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.queue = queue
        self.responses = responses
        self.tenant_settings = tenant_settings or TenantSettingsProvider()
        self.notifier = notifier or LoggingNotificationChannel()
        self._clock = clock

        self._handlers: dict[
            EscalationAction,
            Callable[[TriggeredRule, Email, str], Awaitable[ActionResult]],
        ] = {
            EscalationAction.ESCALATE: self._escalate,
            EscalationAction.NOTIFY_MANAGER: self._notify_manager,
            EscalationAction.HIGH_PRIORITY: self._high_priority,
            EscalationAction.IMMEDIATE_RESPONSE: self._immediate_response,
            EscalationAction.CREATE_TICKET: self._create_ticket,
            EscalationAction.SEND_SMS: self._send_sms,
            EscalationAction.CALL_CUSTOMER: self._call_customer,
            EscalationAction.AUTO_REPLY: self._auto_reply,
        }

    async def execute(
        self,
        rule: TriggeredRule,
        email: Email,
        tenant_id: str,
        classification: Classification | None = None,
    ) -> ActionResult:
        """Execute the rule's action. Never raises; failures become `success=False`."""

        try:
            try:
                action = EscalationAction((rule.action or "").strip().lower())
            except ValueError as e:
                raise UnknownActionError(f"Unknown escalation action: {rule.action}") from e

            result = await self._handlers[action](rule, email, tenant_id)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "escalation_action_failed",
                tenant_id=tenant_id,
                rule_id=rule.rule_id,
                action=rule.action,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ActionResult(action=rule.action, success=False, error=str(e))

        logger.info(
            "escalation_action_executed",
            tenant_id=tenant_id,
            rule_id=rule.rule_id,
            action=result.action,
            success=result.success,
        )
        return result

    async def _escalate(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        case_id = self.repository.create_case(
            tenant_id,
            email.id,
            reason=rule.description,
            priority=rule.priority,
            details={"rule_id": rule.rule_id, "condition": rule.condition, "from": email.from_address},
        )
        return ActionResult(action=EscalationAction.ESCALATE.value, success=True, details={"case_id": case_id})

    async def _notify_manager(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        tenant = self.tenant_settings.get(tenant_id)
        if not tenant.managers:
            return ActionResult(
                action=EscalationAction.NOTIFY_MANAGER.value,
                success=False,
                error="No managers configured",
            )

        sent = []
        for manager in tenant.managers:
            outcome = await deliver(
                self.notifier,
                tenant_id,
                "manager_email",
                {
                    "recipient": manager.email,
                    "subject": f"Escalation Alert: {email.subject}",
                    "message": f"Email from {email.from_address} has been escalated due to: {rule.description}",
                },
            )
            sent.append({"recipient": manager.email, "success": outcome.success, "error": outcome.error})

        delivered = sum(1 for s in sent if s["success"])
        return ActionResult(
            action=EscalationAction.NOTIFY_MANAGER.value,
            success=delivered > 0,
            details={"notifications": sent, "managers_notified": delivered},
            error=None if delivered else "No manager notification succeeded",
        )

    async def _high_priority(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        priority = raised_queue_priority(rule.priority)
        updated = self.queue.raise_priority_for_sender(tenant_id, email.from_address, email.subject, priority)
        return ActionResult(
            action=EscalationAction.HIGH_PRIORITY.value,
            success=True,
            details={"priority": priority, "queue_items_updated": updated},
        )

    async def _immediate_response(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        queue_id = self.queue.add_to_queue(
            email,
            tenant_id,
            priority=IMMEDIATE_RESPONSE_PRIORITY,
            metadata={
                "escalation": True,
                "escalation_rule": rule.rule_id,
                "escalation_reason": rule.description,
            },
        )
        return ActionResult(
            action=EscalationAction.IMMEDIATE_RESPONSE.value,
            success=True,
            details={"queue_id": queue_id, "priority": IMMEDIATE_RESPONSE_PRIORITY},
        )

    async def _create_ticket(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        priority = ticket_priority(rule.priority)
        ticket_id = self.repository.create_ticket(
            tenant_id,
            email.id,
            subject=f"Escalated: {email.subject}",
            description=f"{rule.description}\n\n{email.body}".strip(),
            priority=priority,
            customer_email=email.sender_email() or email.from_address,
        )
        return ActionResult(
            action=EscalationAction.CREATE_TICKET.value,
            success=True,
            details={"ticket_id": ticket_id, "priority": priority},
        )

    async def _send_sms(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        notifications = self.tenant_settings.get(tenant_id).notifications
        if not notifications.sms_notifications or not notifications.phone_number:
            return ActionResult(
                action=EscalationAction.SEND_SMS.value,
                success=False,
                error="SMS notifications not configured",
            )

        outcome = await deliver(
            self.notifier,
            tenant_id,
            "sms",
            {
                "recipient": notifications.phone_number,
                "message": f"Escalation Alert: Email from {email.from_address} - {rule.description}",
            },
        )
        return ActionResult(
            action=EscalationAction.SEND_SMS.value,
            success=outcome.success,
            details={"recipient": notifications.phone_number, **outcome.details},
            error=outcome.error,
        )

    async def _call_customer(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        scheduled_for = self._clock() + CALLBACK_DELAY
        callback_id = self.repository.schedule_callback(
            tenant_id,
            email.id,
            scheduled_for=scheduled_for,
            customer_email=email.sender_email() or email.from_address,
            customer_name=email.sender_name(),
            reason=rule.description,
        )
        return ActionResult(
            action=EscalationAction.CALL_CUSTOMER.value,
            success=True,
            details={"callback_id": callback_id, "scheduled_for": to_iso(scheduled_for)},
        )

    async def _auto_reply(self, rule: TriggeredRule, email: Email, tenant_id: str) -> ActionResult:
        response_id = self.responses.store_response(
            tenant_id,
            email.id,
            response_text="",
            status="requested",
        )
        return ActionResult(
            action=EscalationAction.AUTO_REPLY.value,
            success=True,
            details={"response_id": response_id, "status": "requested", "priority": rule.priority},
        )
