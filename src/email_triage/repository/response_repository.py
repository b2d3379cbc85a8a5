"""Drafted reply storage (`ai_responses`)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text

from email_triage.repository.base import Repository, new_id, persistence_errors
from email_triage.utils import to_iso, utcnow


class ResponseRepository(Repository):
    def store_response(
        self,
        tenant_id: str,
        email_ref: str,
        response_text: str,
        *,
        queue_id: str | None = None,
        status: str = "pending",
        style_applied: bool = False,
        fallback_used: bool = False,
        confidence: int | None = None,
        template_id: str | None = None,
    ) -> str:
        response_id = new_id()
        q = text(
            """
            INSERT INTO ai_responses (
                id,
                tenant_id,
                email_ref,
                queue_id,
                response_text,
                status,
                style_applied,
                fallback_used,
                confidence,
                template_id,
                created_at
            )
            VALUES (
                :id,
                :tenant_id,
                :email_ref,
                :queue_id,
                :response_text,
                :status,
                :style_applied,
                :fallback_used,
                :confidence,
                :template_id,
                :created_at
            )
            """
        )
        with persistence_errors("store_response"):
            with self.engine.begin() as conn:
                conn.execute(
                    q,
                    {
                        "id": response_id,
                        "tenant_id": tenant_id,
                        "email_ref": email_ref,
                        "queue_id": queue_id,
                        "response_text": response_text,
                        "status": status,
                        "style_applied": 1 if style_applied else 0,
                        "fallback_used": 1 if fallback_used else 0,
                        "confidence": confidence,
                        "template_id": template_id,
                        "created_at": to_iso(utcnow()),
                    },
                )
        return response_id

    def list_responses(self, tenant_id: str, status: str | None = None) -> list[dict[str, Any]]:
        where = "WHERE tenant_id = :tenant_id"
        params: dict[str, Any] = {"tenant_id": tenant_id}
        if status is not None:
            where += " AND status = :status"
            params["status"] = status

        q = text(
            f"""
            SELECT id, email_ref, queue_id, response_text, status, style_applied, fallback_used, confidence
            FROM ai_responses
            {where}
            ORDER BY created_at ASC
            """
        )
        with persistence_errors("list_responses"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, params).fetchall()

        return [
            {
                "id": r[0],
                "email_ref": r[1],
                "queue_id": r[2],
                "response_text": r[3],
                "status": r[4],
                "style_applied": bool(r[5]),
                "fallback_used": bool(r[6]),
                "confidence": r[7],
            }
            for r in rows
        ]
