"""Tenant business rules."""

from email_triage.rules.engine import BusinessRulesEngine, validate_rule

__all__ = ["BusinessRulesEngine", "validate_rule"]
