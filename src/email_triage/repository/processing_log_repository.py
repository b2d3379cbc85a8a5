"""Per-run processing log feeding pipeline statistics."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import text

from email_triage.repository.base import Repository, new_id, persistence_errors
from email_triage.utils import to_iso, utcnow


class ProcessingLogRepository(Repository):
    def record(
        self,
        tenant_id: str,
        email_ref: str,
        *,
        pipeline: str,
        queue_id: str | None = None,
        category: str | None = None,
        urgency: str | None = None,
        routing_action: str | None = None,
        auto_replied: bool = False,
        escalated: bool = False,
        error: str | None = None,
        processing_time_ms: float | None = None,
        created_at: datetime | None = None,
    ) -> str:
        log_id = new_id()
        q = text(
            """
            INSERT INTO processing_log (
                id,
                tenant_id,
                email_ref,
                queue_id,
                category,
                urgency,
                routing_action,
                auto_replied,
                escalated,
                pipeline,
                error,
                processing_time_ms,
                created_at
            )
            VALUES (
                :id,
                :tenant_id,
                :email_ref,
                :queue_id,
                :category,
                :urgency,
                :routing_action,
                :auto_replied,
                :escalated,
                :pipeline,
                :error,
                :processing_time_ms,
                :created_at
            )
            """
        )
        with persistence_errors("record_processing_log"):
            with self.engine.begin() as conn:
                conn.execute(
                    q,
                    {
                        "id": log_id,
                        "tenant_id": tenant_id,
                        "email_ref": email_ref,
                        "queue_id": queue_id,
                        "category": category,
                        "urgency": urgency,
                        "routing_action": routing_action,
                        "auto_replied": 1 if auto_replied else 0,
                        "escalated": 1 if escalated else 0,
                        "pipeline": pipeline,
                        "error": error,
                        "processing_time_ms": processing_time_ms,
                        "created_at": to_iso(created_at or utcnow()),
                    },
                )
        return log_id

    def list_since(self, tenant_id: str, since: datetime) -> list[dict[str, Any]]:
        q = text(
            """
            SELECT category, urgency, routing_action, auto_replied, escalated, pipeline
            FROM processing_log
            WHERE tenant_id = :tenant_id AND created_at >= :since
            """
        )
        with persistence_errors("list_processing_log"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, {"tenant_id": tenant_id, "since": to_iso(since)}).fetchall()

        return [
            {
                "category": r[0],
                "urgency": r[1],
                "routing_action": r[2],
                "auto_replied": bool(r[3]),
                "escalated": bool(r[4]),
                "pipeline": r[5],
            }
            for r in rows
        ]
