"""Cached access to tenant settings."""

from __future__ import annotations

import structlog

from email_triage.cache import TTLCache
from email_triage.models.tenant import TenantSettings
from email_triage.repository.tenant_repository import TenantSettingsRepository

logger = structlog.get_logger()


class TenantSettingsProvider:
    """Load tenant settings through a per-tenant TTL cache.

    Tenants with no stored settings get `TenantSettings()` defaults. Store
    failures propagate as `PersistenceError`; callers decide how to degrade.
    """

    def __init__(
        self,
        repository: TenantSettingsRepository | None = None,
        cache: TTLCache[TenantSettings] | None = None,
    ) -> None:
        self.repository = repository
        self.cache = cache

    def get(self, tenant_id: str) -> TenantSettings:
        if self.cache is not None:
            cached = self.cache.get(tenant_id)
            if cached is not None:
                return cached

        settings = None
        if self.repository is not None:
            settings = self.repository.get_settings(tenant_id)
        if settings is None:
            logger.debug("tenant_settings_defaulted", tenant_id=tenant_id)
            settings = TenantSettings()

        if self.cache is not None:
            self.cache.set(tenant_id, settings)
        return settings

    def save(self, tenant_id: str, settings: TenantSettings) -> None:
        if self.repository is None:
            raise RuntimeError("No tenant settings repository configured")
        self.repository.save_settings(tenant_id, settings)
        self.invalidate(tenant_id)

    def invalidate(self, tenant_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(tenant_id)
