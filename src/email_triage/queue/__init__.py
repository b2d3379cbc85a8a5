"""Durable email queue."""

from email_triage.queue.email_queue import (
    DEFAULT_PRIORITY,
    HIGH_PRIORITY,
    LOW_PRIORITY,
    EmailQueue,
    priority_band,
)

__all__ = ["DEFAULT_PRIORITY", "HIGH_PRIORITY", "LOW_PRIORITY", "EmailQueue", "priority_band"]
