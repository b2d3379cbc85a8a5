"""Escalation audit log and side-effect records.

`escalation_log` is append-only: this repository inserts and reads it, and
offers no update or delete.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import text

from email_triage.models.escalation import ActionResult, EscalationRecord
from email_triage.models.rules import TriggeredRule
from email_triage.repository.base import Repository, dumps, loads, new_id, persistence_errors
from email_triage.utils import from_iso, to_iso, utcnow


class EscalationRepository(Repository):
    def insert_record(self, record: EscalationRecord) -> str:
        q = text(
            """
            INSERT INTO escalation_log (
                id,
                tenant_id,
                email_ref,
                reason,
                rule_id,
                priority,
                triggered_rules_json,
                results_json,
                created_at
            )
            VALUES (
                :id,
                :tenant_id,
                :email_ref,
                :reason,
                :rule_id,
                :priority,
                :triggered_rules_json,
                :results_json,
                :created_at
            )
            """
        )
        with persistence_errors("insert_escalation_record"):
            with self.engine.begin() as conn:
                conn.execute(
                    q,
                    {
                        "id": record.id,
                        "tenant_id": record.tenant_id,
                        "email_ref": record.email_ref,
                        "reason": record.reason,
                        "rule_id": record.rule_id,
                        "priority": record.priority,
                        "triggered_rules_json": dumps(
                            [r.model_dump() for r in record.triggered_rules]
                        ),
                        "results_json": dumps(
                            [r.model_dump(mode="json") for r in record.results_by_action]
                        ),
                        "created_at": to_iso(record.created_at),
                    },
                )
        return record.id

    def list_records(
        self,
        tenant_id: str,
        since: datetime | None = None,
        email_ref: str | None = None,
    ) -> list[EscalationRecord]:
        where = ["tenant_id = :tenant_id"]
        params: dict[str, Any] = {"tenant_id": tenant_id}
        if since is not None:
            where.append("created_at >= :since")
            params["since"] = to_iso(since)
        if email_ref is not None:
            where.append("email_ref = :email_ref")
            params["email_ref"] = email_ref

        q = text(
            f"""
            SELECT
                id,
                tenant_id,
                email_ref,
                reason,
                rule_id,
                priority,
                triggered_rules_json,
                results_json,
                created_at
            FROM escalation_log
            WHERE {" AND ".join(where)}
            ORDER BY created_at ASC
            """
        )
        with persistence_errors("list_escalation_records"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, params).fetchall()

        return [
            EscalationRecord(
                id=r[0],
                tenant_id=r[1],
                email_ref=r[2],
                reason=r[3],
                rule_id=r[4],
                priority=int(r[5]),
                triggered_rules=[TriggeredRule(**t) for t in loads(r[6], [])],
                results_by_action=[ActionResult(**a) for a in loads(r[7], [])],
                created_at=from_iso(r[8]),
            )
            for r in rows
        ]

    def create_case(
        self,
        tenant_id: str,
        email_ref: str,
        reason: str,
        priority: int,
        details: dict[str, Any] | None = None,
    ) -> str:
        case_id = new_id()
        q = text(
            """
            INSERT INTO escalation_cases (id, tenant_id, email_ref, reason, priority, status, details_json, created_at)
            VALUES (:id, :tenant_id, :email_ref, :reason, :priority, 'open', :details_json, :created_at)
            """
        )
        with persistence_errors("create_escalation_case"):
            with self.engine.begin() as conn:
                conn.execute(
                    q,
                    {
                        "id": case_id,
                        "tenant_id": tenant_id,
                        "email_ref": email_ref,
                        "reason": reason,
                        "priority": priority,
                        "details_json": dumps(details or {}),
                        "created_at": to_iso(utcnow()),
                    },
                )
        return case_id

    def create_ticket(
        self,
        tenant_id: str,
        email_ref: str,
        subject: str,
        description: str,
        priority: str,
        customer_email: str | None = None,
    ) -> str:
        ticket_id = new_id()
        q = text(
            """
            INSERT INTO support_tickets (
                id, tenant_id, email_ref, subject, description, priority, status, customer_email, created_at
            )
            VALUES (
                :id, :tenant_id, :email_ref, :subject, :description, :priority, 'open', :customer_email, :created_at
            )
            """
        )
        with persistence_errors("create_support_ticket"):
            with self.engine.begin() as conn:
                conn.execute(
                    q,
                    {
                        "id": ticket_id,
                        "tenant_id": tenant_id,
                        "email_ref": email_ref,
                        "subject": subject,
                        "description": description,
                        "priority": priority,
                        "customer_email": customer_email,
                        "created_at": to_iso(utcnow()),
                    },
                )
        return ticket_id

    def schedule_callback(
        self,
        tenant_id: str,
        email_ref: str,
        scheduled_for: datetime,
        customer_email: str | None = None,
        customer_name: str | None = None,
        reason: str | None = None,
    ) -> str:
        callback_id = new_id()
        q = text(
            """
            INSERT INTO customer_callbacks (
                id, tenant_id, email_ref, customer_email, customer_name, reason, scheduled_for, status, created_at
            )
            VALUES (
                :id, :tenant_id, :email_ref, :customer_email, :customer_name,
                :reason, :scheduled_for, 'scheduled', :created_at
            )
            """
        )
        with persistence_errors("schedule_callback"):
            with self.engine.begin() as conn:
                conn.execute(
                    q,
                    {
                        "id": callback_id,
                        "tenant_id": tenant_id,
                        "email_ref": email_ref,
                        "customer_email": customer_email,
                        "customer_name": customer_name,
                        "reason": reason,
                        "scheduled_for": to_iso(scheduled_for),
                        "created_at": to_iso(utcnow()),
                    },
                )
        return callback_id

    def count_rows(self, table: str, tenant_id: str) -> int:
        """Count side-effect rows for a tenant (cases, tickets, callbacks)."""

        if table not in {"escalation_cases", "support_tickets", "customer_callbacks", "escalation_log"}:
            raise ValueError(f"Unknown escalation table: {table}")
        q = text(f"SELECT COUNT(*) FROM {table} WHERE tenant_id = :tenant_id")
        with persistence_errors("count_escalation_rows"):
            with self.engine.begin() as conn:
                return int(conn.execute(q, {"tenant_id": tenant_id}).scalar() or 0)
