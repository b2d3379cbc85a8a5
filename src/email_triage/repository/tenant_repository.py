"""Tenant configuration: settings, style profiles and response templates."""

from __future__ import annotations

from sqlalchemy import text

from email_triage.models.responses import ResponseTemplate, StyleProfile
from email_triage.models.tenant import TenantSettings
from email_triage.repository.base import Repository, insert_sequenced, new_id, persistence_errors
from email_triage.utils import to_iso, utcnow


class TenantSettingsRepository(Repository):
    def get_settings(self, tenant_id: str) -> TenantSettings | None:
        q = text("SELECT settings_json FROM tenant_settings WHERE tenant_id = :tenant_id")
        with persistence_errors("get_tenant_settings"):
            with self.engine.begin() as conn:
                row = conn.execute(q, {"tenant_id": tenant_id}).fetchone()
        if not row:
            return None
        return TenantSettings.model_validate_json(row[0])

    def save_settings(self, tenant_id: str, settings: TenantSettings) -> None:
        params = {
            "tenant_id": tenant_id,
            "settings_json": settings.model_dump_json(),
            "now": to_iso(utcnow()),
        }
        with persistence_errors("save_tenant_settings"):
            with self.engine.begin() as conn:
                updated = conn.execute(
                    text(
                        """
                        UPDATE tenant_settings
                        SET settings_json = :settings_json, updated_at = :now
                        WHERE tenant_id = :tenant_id
                        """
                    ),
                    params,
                )
                if not updated.rowcount:
                    conn.execute(
                        text(
                            """
                            INSERT INTO tenant_settings (tenant_id, settings_json, updated_at)
                            VALUES (:tenant_id, :settings_json, :now)
                            """
                        ),
                        params,
                    )


class StyleProfileRepository(Repository):
    """Read access to externally maintained style profiles."""

    def get_profile(self, tenant_id: str) -> StyleProfile | None:
        q = text("SELECT profile_json FROM style_profiles WHERE tenant_id = :tenant_id")
        with persistence_errors("get_style_profile"):
            with self.engine.begin() as conn:
                row = conn.execute(q, {"tenant_id": tenant_id}).fetchone()
        if not row:
            return None
        return StyleProfile.model_validate_json(row[0])

    def save_profile(self, tenant_id: str, profile: StyleProfile) -> None:
        params = {
            "tenant_id": tenant_id,
            "profile_json": profile.model_dump_json(),
            "now": to_iso(utcnow()),
        }
        with persistence_errors("save_style_profile"):
            with self.engine.begin() as conn:
                conn.execute(
                    text("DELETE FROM style_profiles WHERE tenant_id = :tenant_id"),
                    {"tenant_id": tenant_id},
                )
                conn.execute(
                    text(
                        """
                        INSERT INTO style_profiles (tenant_id, profile_json, updated_at)
                        VALUES (:tenant_id, :profile_json, :now)
                        """
                    ),
                    params,
                )


class TemplateRepository(Repository):
    def list_templates(self, tenant_id: str, enabled_only: bool = True) -> list[ResponseTemplate]:
        where = "WHERE tenant_id = :tenant_id"
        if enabled_only:
            where += " AND enabled = 1"
        q = text(
            f"""
            SELECT id, tenant_id, name, category, body_template, is_default, enabled
            FROM response_templates
            {where}
            ORDER BY seq ASC
            """
        )
        with persistence_errors("list_templates"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, {"tenant_id": tenant_id}).fetchall()

        return [
            ResponseTemplate(
                id=r[0],
                tenant_id=r[1],
                name=r[2],
                category=r[3],
                body_template=r[4],
                is_default=bool(r[5]),
                enabled=bool(r[6]),
            )
            for r in rows
        ]

    def create_template(
        self,
        tenant_id: str,
        *,
        name: str,
        body_template: str,
        category: str = "general",
        is_default: bool = False,
        enabled: bool = True,
    ) -> ResponseTemplate:
        template_id = new_id()
        q = text(
            """
            INSERT INTO response_templates (
                id, seq, tenant_id, name, category, body_template, is_default, enabled, created_at
            )
            VALUES (
                :id,
                (SELECT COALESCE(MAX(seq), 0) + 1 FROM response_templates),
                :tenant_id,
                :name,
                :category,
                :body_template,
                :is_default,
                :enabled,
                :created_at
            )
            """
        )
        insert_sequenced(
            self.engine,
            q,
            {
                "id": template_id,
                "tenant_id": tenant_id,
                "name": name,
                "category": category,
                "body_template": body_template,
                "is_default": 1 if is_default else 0,
                "enabled": 1 if enabled else 0,
                "created_at": to_iso(utcnow()),
            },
            "create_template",
        )

        return ResponseTemplate(
            id=template_id,
            tenant_id=tenant_id,
            name=name,
            category=category,
            body_template=body_template,
            is_default=is_default,
            enabled=enabled,
        )

    def delete_template(self, tenant_id: str, template_id: str) -> bool:
        q = text("DELETE FROM response_templates WHERE tenant_id = :tenant_id AND id = :template_id")
        with persistence_errors("delete_template"):
            with self.engine.begin() as conn:
                deleted = conn.execute(q, {"tenant_id": tenant_id, "template_id": template_id}).rowcount
        return bool(deleted)
