"""Business rule repository.

Rules live in `escalation_rules`; `seq` preserves insertion order so rules
with equal priority keep a stable evaluation order.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import text

from email_triage.models.rules import RuleDefinition
from email_triage.repository.base import Repository, insert_sequenced, new_id, persistence_errors
from email_triage.utils import from_iso, to_iso, utcnow

_COLUMNS = """
    id,
    tenant_id,
    condition_type,
    condition_value,
    action_type,
    priority,
    description,
    enabled,
    created_at
"""

_PATCHABLE = {
    "condition": "condition_type",
    "value": "condition_value",
    "action": "action_type",
    "priority": "priority",
    "description": "description",
    "enabled": "enabled",
}


def _row_to_rule(r) -> RuleDefinition:
    return RuleDefinition(
        id=r[0],
        tenant_id=r[1],
        condition=r[2],
        value=r[3],
        action=r[4],
        priority=int(r[5]),
        description=r[6] or "",
        enabled=bool(r[7]),
        created_at=from_iso(r[8]),
    )


class RuleRepository(Repository):
    """Tenant-scoped CRUD for business rules."""

    def list_rules(self, tenant_id: str, enabled_only: bool = True) -> list[RuleDefinition]:
        where = "WHERE tenant_id = :tenant_id"
        if enabled_only:
            where += " AND enabled = 1"
        q = text(f"SELECT {_COLUMNS} FROM escalation_rules {where} ORDER BY seq ASC")

        with persistence_errors("list_rules"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, {"tenant_id": tenant_id}).fetchall()
        return [_row_to_rule(r) for r in rows]

    def get_rule(self, tenant_id: str, rule_id: str) -> RuleDefinition | None:
        q = text(
            f"SELECT {_COLUMNS} FROM escalation_rules WHERE tenant_id = :tenant_id AND id = :rule_id"
        )
        with persistence_errors("get_rule"):
            with self.engine.begin() as conn:
                row = conn.execute(q, {"tenant_id": tenant_id, "rule_id": rule_id}).fetchone()
        return _row_to_rule(row) if row else None

    def create_rule(
        self,
        tenant_id: str,
        *,
        condition: str,
        action: str,
        priority: int,
        value: str | None = None,
        description: str = "",
        enabled: bool = True,
    ) -> RuleDefinition:
        rule_id = new_id()
        now = to_iso(utcnow())
        q = text(
            """
            INSERT INTO escalation_rules (
                id,
                seq,
                tenant_id,
                condition_type,
                condition_value,
                action_type,
                priority,
                description,
                enabled,
                created_at,
                updated_at
            )
            VALUES (
                :id,
                (SELECT COALESCE(MAX(seq), 0) + 1 FROM escalation_rules),
                :tenant_id,
                :condition,
                :value,
                :action,
                :priority,
                :description,
                :enabled,
                :now,
                :now
            )
            """
        )
        insert_sequenced(
            self.engine,
            q,
            {
                "id": rule_id,
                "tenant_id": tenant_id,
                "condition": condition,
                "value": value,
                "action": action,
                "priority": priority,
                "description": description,
                "enabled": 1 if enabled else 0,
                "now": now,
            },
            "create_rule",
        )

        return RuleDefinition(
            id=rule_id,
            tenant_id=tenant_id,
            condition=condition,
            value=value,
            action=action,
            priority=priority,
            description=description,
            enabled=enabled,
            created_at=from_iso(now),
        )

    def update_rule(self, tenant_id: str, rule_id: str, patch: dict[str, Any]) -> RuleDefinition | None:
        assignments: list[str] = []
        params: dict[str, Any] = {"tenant_id": tenant_id, "rule_id": rule_id, "now": to_iso(utcnow())}
        for key, column in _PATCHABLE.items():
            if key in patch:
                value = patch[key]
                if key == "enabled":
                    value = 1 if value else 0
                assignments.append(f"{column} = :{key}")
                params[key] = value

        if assignments:
            q = text(
                f"""
                UPDATE escalation_rules
                SET {", ".join(assignments)}, updated_at = :now
                WHERE tenant_id = :tenant_id AND id = :rule_id
                """
            )
            with persistence_errors("update_rule"):
                with self.engine.begin() as conn:
                    conn.execute(q, params)

        return self.get_rule(tenant_id, rule_id)

    def delete_rule(self, tenant_id: str, rule_id: str) -> bool:
        q = text("DELETE FROM escalation_rules WHERE tenant_id = :tenant_id AND id = :rule_id")
        with persistence_errors("delete_rule"):
            with self.engine.begin() as conn:
                deleted = conn.execute(q, {"tenant_id": tenant_id, "rule_id": rule_id}).rowcount
        return bool(deleted)
