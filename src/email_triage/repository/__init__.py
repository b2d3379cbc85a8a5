"""Repository layer over the pipeline database.

All repositories use SQLAlchemy Core `text()` queries scoped by tenant and
raise `PersistenceError` when the store fails.
"""

from email_triage.repository.escalation_repository import EscalationRepository
from email_triage.repository.processing_log_repository import ProcessingLogRepository
from email_triage.repository.response_repository import ResponseRepository
from email_triage.repository.rule_repository import RuleRepository
from email_triage.repository.tenant_repository import (
    StyleProfileRepository,
    TemplateRepository,
    TenantSettingsRepository,
)

__all__ = [
    "EscalationRepository",
    "ProcessingLogRepository",
    "ResponseRepository",
    "RuleRepository",
    "StyleProfileRepository",
    "TemplateRepository",
    "TenantSettingsRepository",
]
