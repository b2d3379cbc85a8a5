"""Business rules engine.

Evaluates a tenant's configured rules against one email and its
classification. Every matching rule is returned; no rule short-circuits
another. Results are ordered by ascending configured priority, and rules with
equal priority keep their insertion order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Sequence

import structlog

from email_triage.cache import TTLCache
from email_triage.config import Settings
from email_triage.exceptions import PersistenceError, ValidationError
from email_triage.models.classification import (
    Classification,
    EmailCategory,
    Sentiment,
    UrgencyLevel,
)
from email_triage.models.email import Email
from email_triage.models.rules import (
    VALUE_CONDITIONS,
    EscalationAction,
    RuleCondition,
    RuleDefinition,
    TriggeredRule,
)
from email_triage.models.tenant import TenantSettings
from email_triage.repository.rule_repository import RuleRepository
from email_triage.rules.conditions import (
    CONDITIONS,
    DEFAULT_PRIORITIES,
    RuleContext,
    resolve_condition,
)
from email_triage.tenants import TenantSettingsProvider
from email_triage.utils import utcnow

logger = structlog.get_logger()

_VALUE_ENUMS: dict[RuleCondition, type] = {
    RuleCondition.CATEGORY: EmailCategory,
    RuleCondition.URGENCY: UrgencyLevel,
    RuleCondition.SENTIMENT: Sentiment,
}


def validate_rule(
    condition: str | None,
    action: str | None,
    priority: int | None = None,
    value: str | None = None,
) -> None:
    """Validate a rule definition.

    Raises:
        ValidationError: Listing every problem found.
    """
    errors: list[str] = []

    resolved = resolve_condition(condition or "")
    if resolved is None:
        errors.append(f"Invalid condition: {condition}")

    try:
        EscalationAction((action or "").strip().lower())
    except ValueError:
        errors.append(f"Invalid action: {action}")

    if priority is not None and not 1 <= int(priority) <= 10:
        errors.append("Priority must be between 1 and 10")

    if resolved in VALUE_CONDITIONS:
        if not (value or "").strip():
            errors.append(f"Condition {resolved.value} requires a value")
        else:
            try:
                _VALUE_ENUMS[resolved](value.strip().lower())
            except ValueError:
                errors.append(f"Invalid value for {resolved.value}: {value}")

    if errors:
        raise ValidationError("; ".join(errors))


class BusinessRulesEngine:
    """Read-only evaluation of tenant business rules."""

    def __init__(
        self,
        repository: RuleRepository,
        tenant_settings: TenantSettingsProvider | None = None,
        settings: Optional[Settings] = None,
        cache: TTLCache[list[RuleDefinition]] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        from email_triage.config import get_settings

        self.repository = repository
        self.tenant_settings = tenant_settings or TenantSettingsProvider()
        self.settings = settings or get_settings()
        if cache is None and self.settings.cache_enabled:
            cache = TTLCache(ttl=self.settings.cache_ttl, max_size=self.settings.cache_max_size)
        self.cache = cache
        self._clock = clock

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def get_rules(self, tenant_id: str) -> list[RuleDefinition]:
        """Enabled rules for a tenant, served from cache when fresh."""

        if self.cache is not None:
            cached = self.cache.get(tenant_id)
            if cached is not None:
                return cached

        rules = self.repository.list_rules(tenant_id, enabled_only=True)
        if self.cache is not None:
            self.cache.set(tenant_id, rules)
        return rules

    def _load_tenant_settings(self, tenant_id: str) -> TenantSettings | None:
        try:
            return self.tenant_settings.get(tenant_id)
        except PersistenceError as e:
            logger.warning("rules_tenant_settings_unavailable", tenant_id=tenant_id, error=str(e))
            return None

    def evaluate_rules(
        self,
        email: Email,
        tenant_id: str,
        classification: Classification | None = None,
    ) -> list[TriggeredRule]:
        """Evaluate every enabled rule for the tenant.

        Args:
            email: The email under evaluation.
            tenant_id: Owning tenant.
            classification: Classification of the email, when available. Without it
                urgency, complaint and sentiment conditions fall back to keyword checks.

        Returns:
            Triggered rules sorted by ascending priority, insertion order breaking ties.
        """
        try:
            rules = self.get_rules(tenant_id)
        except PersistenceError as e:
            logger.error("rules_load_failed", tenant_id=tenant_id, error=str(e))
            return []

        if not rules:
            return []

        tenant_settings = self._load_tenant_settings(tenant_id)
        now = self._clock()
        triggered: list[TriggeredRule] = []

        for rule in rules:
            condition = resolve_condition(rule.condition)
            if condition is None:
                logger.warning("rule_unknown_condition", rule_id=rule.id, condition=rule.condition)
                continue

            ctx = RuleContext(
                email=email,
                classification=classification,
                value=rule.value,
                tenant_settings=tenant_settings,
                now=now,
            )
            try:
                matched = CONDITIONS[condition](ctx)
            except Exception as e:  # noqa: BLE001
                logger.error(
                    "rule_evaluation_failed",
                    rule_id=rule.id,
                    condition=rule.condition,
                    error=str(e),
                )
                continue

            if matched:
                triggered.append(
                    TriggeredRule(
                        rule_id=rule.id,
                        condition=condition.value,
                        action=rule.action,
                        priority=rule.priority,
                        description=rule.description or f"Rule triggered: {condition.value}",
                    )
                )

        # sorted() is stable, so equal priorities keep insertion order.
        triggered = sorted(triggered, key=lambda r: r.priority)
        if triggered:
            logger.info(
                "rules_triggered",
                email_id=email.id,
                tenant_id=tenant_id,
                rule_ids=[r.rule_id for r in triggered],
            )
        return triggered

    def evaluate_batch(
        self,
        emails: Sequence[Email],
        tenant_id: str,
        classifications: Sequence[Classification | None] | None = None,
    ) -> list[dict[str, Any]]:
        """Evaluate rules for several emails; classifications align with emails by index."""

        results: list[dict[str, Any]] = []
        for i, email in enumerate(emails):
            classification = classifications[i] if classifications and i < len(classifications) else None
            triggered = self.evaluate_rules(email, tenant_id, classification)
            results.append(
                {
                    "email_id": email.id,
                    "triggered_rules": triggered,
                    "rule_count": len(triggered),
                }
            )
        return results

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    def invalidate(self, tenant_id: str | None = None) -> None:
        if self.cache is None:
            return
        if tenant_id is None:
            self.cache.clear()
        else:
            self.cache.invalidate(tenant_id)

    def list_rules(self, tenant_id: str, include_disabled: bool = False) -> list[RuleDefinition]:
        return self.repository.list_rules(tenant_id, enabled_only=not include_disabled)

    def create_rule(
        self,
        tenant_id: str,
        condition: str,
        action: str,
        priority: int | None = None,
        value: str | None = None,
        description: str = "",
        enabled: bool = True,
    ) -> RuleDefinition:
        """Validate and persist a new rule.

        Raises:
            ValidationError: If the rule definition is invalid.
            PersistenceError: If the rule cannot be stored.
        """
        validate_rule(condition, action, priority, value)
        resolved = resolve_condition(condition)
        if priority is None:
            priority = DEFAULT_PRIORITIES.get(resolved, 1)

        rule = self.repository.create_rule(
            tenant_id,
            condition=resolved.value,
            action=action.strip().lower(),
            priority=int(priority),
            value=value.strip().lower() if value and resolved in VALUE_CONDITIONS else value,
            description=description,
            enabled=enabled,
        )
        self.invalidate(tenant_id)
        logger.info("rule_created", tenant_id=tenant_id, rule_id=rule.id, condition=rule.condition)
        return rule

    def update_rule(self, tenant_id: str, rule_id: str, patch: dict[str, Any]) -> RuleDefinition | None:
        current = self.repository.get_rule(tenant_id, rule_id)
        if current is None:
            logger.warning("rule_not_found", tenant_id=tenant_id, rule_id=rule_id)
            return None

        merged = {**current.model_dump(), **patch}
        validate_rule(merged["condition"], merged["action"], merged["priority"], merged["value"])

        updated = self.repository.update_rule(tenant_id, rule_id, patch)
        self.invalidate(tenant_id)
        logger.info("rule_updated", tenant_id=tenant_id, rule_id=rule_id, fields=sorted(patch))
        return updated

    def delete_rule(self, tenant_id: str, rule_id: str) -> bool:
        deleted = self.repository.delete_rule(tenant_id, rule_id)
        self.invalidate(tenant_id)
        logger.info("rule_deleted", tenant_id=tenant_id, rule_id=rule_id, deleted=deleted)
        return deleted