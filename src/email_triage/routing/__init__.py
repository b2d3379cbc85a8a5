"""Routing decisions and business hours."""

from email_triage.routing.business_hours import is_open, next_open
from email_triage.routing.router import EmailRouter, calculate_priority

__all__ = ["EmailRouter", "calculate_priority", "is_open", "next_open"]
