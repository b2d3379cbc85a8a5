"""Notification channels used by escalations.

Delivery providers (email, SMS) live outside this package. The default
channel logs every notification and keeps the most recent ones so operators
and tests can see what would have been sent.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Protocol

import structlog

from email_triage.models.escalation import NotificationResult

logger = structlog.get_logger()

DEFAULT_HISTORY_SIZE = 100


class NotificationChannel(Protocol):
    async def send(self, tenant_id: str, type: str, payload: dict[str, Any]) -> NotificationResult:
        ...


class LoggingNotificationChannel:
    """Record notifications instead of delivering them.

    Only the last `history_size` notifications are kept.
    """

    name = "log"

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self.sent: deque[dict[str, Any]] = deque(maxlen=history_size)

    async def send(self, tenant_id: str, type: str, payload: dict[str, Any]) -> NotificationResult:
        entry = {"tenant_id": tenant_id, "type": type, "payload": payload}
        self.sent.append(entry)
        logger.info("notification_recorded", tenant_id=tenant_id, type=type, recipient=payload.get("recipient"))
        return NotificationResult(success=True, channel=self.name, details={"status": "recorded"})


async def deliver(
    channel: NotificationChannel, tenant_id: str, type: str, payload: dict[str, Any]
) -> NotificationResult:
    """Send through `channel`; a raising channel yields a failed result."""

    try:
        return await channel.send(tenant_id, type, payload)
    except Exception as e:  # noqa: BLE001
        logger.warning(
            "notification_failed",
            tenant_id=tenant_id,
            type=type,
            recipient=payload.get("recipient"),
            error=str(e),
            error_type=e.__class__.__name__,
        )
        return NotificationResult(
            success=False,
            channel=getattr(channel, "name", ""),
            error=str(e),
        )
