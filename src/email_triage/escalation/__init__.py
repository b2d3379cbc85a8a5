"""Escalation actions, engine and notification channels."""

from email_triage.escalation.actions import EscalationActionExecutor
from email_triage.escalation.engine import EscalationEngine
from email_triage.escalation.notifications import LoggingNotificationChannel, NotificationChannel

__all__ = [
    "EscalationActionExecutor",
    "EscalationEngine",
    "LoggingNotificationChannel",
    "NotificationChannel",
]
