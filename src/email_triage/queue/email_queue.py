"""Durable priority queue of emails awaiting processing.

Items move through a small lifecycle (see `models.queue.ALLOWED_TRANSITIONS`).
Every status change is a conditional UPDATE on the status the caller expects,
so two workers can never both move the same item: the loser's UPDATE matches
zero rows and the call returns False.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

import structlog
from sqlalchemy import text

from email_triage.config import Settings
from email_triage.exceptions import PersistenceError, ValidationError
from email_triage.models.email import Email
from email_triage.models.queue import QueueItem, QueueStats, QueueStatus, can_transition
from email_triage.repository.base import dumps, insert_sequenced, loads, new_id, persistence_errors
from email_triage.utils import from_iso, to_iso, utcnow

logger = structlog.get_logger()

DEFAULT_PRIORITY = 50
HIGH_PRIORITY = 90
LOW_PRIORITY = 20

_SELECT_COLUMNS = """
    id,
    tenant_id,
    email_ref,
    from_address,
    to_address,
    subject,
    body,
    provider,
    priority,
    status,
    retry_count,
    max_retries,
    scheduled_for,
    metadata_json,
    result_json,
    failure_reason,
    created_at,
    updated_at,
    processing_started_at,
    processing_completed_at
"""


def _row_to_item(r) -> QueueItem:
    return QueueItem(
        id=r[0],
        tenant_id=r[1],
        email_ref=r[2],
        from_address=r[3] or "",
        to=r[4] or "",
        subject=r[5] or "",
        body=r[6] or "",
        provider=r[7] or "unknown",
        priority=int(r[8]),
        status=QueueStatus(r[9]),
        retry_count=int(r[10]),
        max_retries=int(r[11]),
        scheduled_for=from_iso(r[12]),
        metadata=loads(r[13], {}),
        result=loads(r[14]),
        failure_reason=r[15],
        created_at=from_iso(r[16]),
        updated_at=from_iso(r[17]),
        processing_started_at=from_iso(r[18]),
        processing_completed_at=from_iso(r[19]),
    )


def _item_filter(queue_id: str, tenant_id: str | None) -> tuple[str, dict[str, Any]]:
    """WHERE clause for a single item, scoped to the tenant when one is given."""

    if tenant_id is None:
        return "id = :id", {"id": queue_id}
    return "id = :id AND tenant_id = :tenant_id", {"id": queue_id, "tenant_id": tenant_id}


def priority_band(priority: int) -> str:
    if priority >= 70:
        return "high"
    if priority >= 40:
        return "medium"
    return "low"


class EmailQueue:
    """Tenant-scoped email queue backed by the `email_queue` table."""

    def __init__(
        self,
        engine,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        from email_triage.config import get_settings

        self.engine = engine
        self.settings = settings or get_settings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def add_to_queue(
        self,
        email: Email,
        tenant_id: str,
        priority: int = DEFAULT_PRIORITY,
        scheduled_for: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Insert an email as a pending queue item.

        Args:
            email: Inbound email; `from` and `subject` are required.
            tenant_id: Owning tenant.
            priority: Queue priority, higher is more urgent.
            scheduled_for: Earliest processing time. Defaults to now.
            metadata: Initial metadata merged into the item.

        Returns:
            The new queue item ID.

        Raises:
            ValidationError: If the email has no sender or no subject, or no tenant is given.
            PersistenceError: If the insert fails.
        """
        missing = [
            name
            for name, value in (("from", email.from_address), ("subject", email.subject))
            if not (value or "").strip()
        ]
        if missing:
            raise ValidationError(f"Email is missing required fields: {', '.join(missing)}")
        if not tenant_id:
            raise ValidationError("tenant_id is required")

        queue_id = new_id()
        now = self._clock()
        item_metadata = {
            "received_at": to_iso(email.received_at),
            "provider_message_id": email.provider_message_id,
            **(email.metadata or {}),
            **(metadata or {}),
        }

        q = text(
            """
            INSERT INTO email_queue (
                id,
                seq,
                tenant_id,
                email_ref,
                from_address,
                to_address,
                subject,
                body,
                provider,
                priority,
                status,
                retry_count,
                max_retries,
                scheduled_for,
                metadata_json,
                created_at,
                updated_at
            )
            VALUES (
                :id,
                (SELECT COALESCE(MAX(seq), 0) + 1 FROM email_queue),
                :tenant_id,
                :email_ref,
                :from_address,
                :to_address,
                :subject,
                :body,
                :provider,
                :priority,
                'pending',
                0,
                :max_retries,
                :scheduled_for,
                :metadata_json,
                :now,
                :now
            )
            """
        )
        insert_sequenced(
            self.engine,
            q,
            {
                "id": queue_id,
                "tenant_id": tenant_id,
                "email_ref": email.id,
                "from_address": email.from_address,
                "to_address": email.to,
                "subject": email.subject,
                "body": email.body,
                "provider": email.provider,
                "priority": priority,
                "max_retries": self.settings.queue_max_retries,
                "scheduled_for": to_iso(scheduled_for or now),
                "metadata_json": dumps(item_metadata),
                "now": to_iso(now),
            },
            "add_to_queue",
        )

        logger.info(
            "email_queued",
            queue_id=queue_id,
            email_id=email.id,
            tenant_id=tenant_id,
            priority=priority,
        )
        return queue_id

    def add_high_priority(self, email: Email, tenant_id: str) -> str:
        return self.add_to_queue(email, tenant_id, priority=HIGH_PRIORITY)

    def add_low_priority(self, email: Email, tenant_id: str) -> str:
        return self.add_to_queue(email, tenant_id, priority=LOW_PRIORITY)

    def schedule_for_later(
        self,
        email: Email,
        tenant_id: str,
        scheduled_for: datetime,
        priority: int = DEFAULT_PRIORITY,
    ) -> str:
        return self.add_to_queue(email, tenant_id, priority=priority, scheduled_for=scheduled_for)

    def add_batch_to_queue(
        self,
        emails: Iterable[Email],
        tenant_id: str,
        priority: int = DEFAULT_PRIORITY,
    ) -> list[dict[str, Any]]:
        """Queue several emails; one failure does not stop the rest."""

        results: list[dict[str, Any]] = []
        for email in emails:
            try:
                queue_id = self.add_to_queue(email, tenant_id, priority=priority)
                results.append({"email_id": email.id, "success": True, "queue_id": queue_id})
            except (ValidationError, PersistenceError) as e:
                logger.warning("email_queue_batch_item_failed", email_id=email.id, error=str(e))
                results.append({"email_id": email.id, "success": False, "error": str(e)})
        return results

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_queue_item(self, queue_id: str, tenant_id: str | None = None) -> QueueItem | None:
        where, params = _item_filter(queue_id, tenant_id)
        q = text(f"SELECT {_SELECT_COLUMNS} FROM email_queue WHERE {where}")
        with persistence_errors("get_queue_item"):
            with self.engine.begin() as conn:
                row = conn.execute(q, params).fetchone()
        return _row_to_item(row) if row else None

    def get_next_batch(
        self,
        tenant_id: str | None = None,
        status: QueueStatus | str = QueueStatus.PENDING,
        limit: int | None = None,
    ) -> list[QueueItem]:
        """Return due items, highest priority first, then earliest scheduled, then arrival order.

        Items scheduled in the future are excluded.
        """
        where = ["status = :status", "scheduled_for <= :now"]
        params: dict[str, Any] = {
            "status": QueueStatus(status).value,
            "now": to_iso(self._clock()),
            "limit": limit or self.settings.queue_batch_size,
        }
        if tenant_id is not None:
            where.append("tenant_id = :tenant_id")
            params["tenant_id"] = tenant_id

        q = text(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM email_queue
            WHERE {" AND ".join(where)}
            ORDER BY priority DESC, scheduled_for ASC, seq ASC
            LIMIT :limit
            """
        )
        with persistence_errors("get_next_batch"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, params).fetchall()
        return [_row_to_item(r) for r in rows]

    def claim_next_batch(self, tenant_id: str | None = None, limit: int | None = None) -> list[QueueItem]:
        """Select the next due batch and claim each item; items another worker won are skipped."""

        claimed: list[QueueItem] = []
        for item in self.get_next_batch(tenant_id, QueueStatus.PENDING, limit):
            if self.mark_as_processing(item.id, item.tenant_id):
                claimed.append(item.model_copy(update={"status": QueueStatus.PROCESSING}))
        return claimed

    # ------------------------------------------------------------------
    # Updates and lifecycle
    # ------------------------------------------------------------------

    def update_queue_item(self, queue_id: str, patch: dict[str, Any], tenant_id: str | None = None) -> bool:
        """Merge metadata and/or set priority. Unknown IDs are a logged no-op."""

        item = self.get_queue_item(queue_id, tenant_id)
        if item is None:
            logger.warning("queue_item_not_found", queue_id=queue_id, operation="update")
            return False

        where, params = _item_filter(queue_id, tenant_id)
        sets = ["updated_at = :now"]
        params["now"] = to_iso(self._clock())
        if "metadata" in patch and patch["metadata"] is not None:
            sets.append("metadata_json = :metadata_json")
            params["metadata_json"] = dumps({**item.metadata, **patch["metadata"]})
        if "priority" in patch and patch["priority"] is not None:
            sets.append("priority = :priority")
            params["priority"] = int(patch["priority"])

        q = text(f"UPDATE email_queue SET {', '.join(sets)} WHERE {where}")
        with persistence_errors("update_queue_item"):
            with self.engine.begin() as conn:
                conn.execute(q, params)
        return True

    def _transition(
        self,
        queue_id: str,
        target: QueueStatus,
        expected: tuple[QueueStatus, ...],
        sets: dict[str, Any] | None = None,
        tenant_id: str | None = None,
    ) -> bool:
        item = self.get_queue_item(queue_id, tenant_id)
        if item is None:
            logger.warning("queue_item_not_found", queue_id=queue_id, target=target.value)
            return False
        if item.status not in expected or not can_transition(item.status, target):
            logger.warning(
                "queue_invalid_transition",
                queue_id=queue_id,
                current=item.status.value,
                target=target.value,
            )
            return False

        sets = dict(sets or {})
        assignments = ["status = :target", "updated_at = :now"]
        where, params = _item_filter(queue_id, tenant_id)
        params.update(target=target.value, current=item.status.value, now=to_iso(self._clock()))
        for column, value in sets.items():
            assignments.append(f"{column} = :{column}")
            params[column] = value

        q = text(
            f"""
            UPDATE email_queue
            SET {", ".join(assignments)}
            WHERE {where} AND status = :current
            """
        )
        with persistence_errors(f"queue_transition_{target.value}"):
            with self.engine.begin() as conn:
                changed = conn.execute(q, params).rowcount

        if not changed:
            logger.info(
                "queue_transition_conflict",
                queue_id=queue_id,
                current=item.status.value,
                target=target.value,
            )
            return False
        return True

    def mark_as_processing(self, queue_id: str, tenant_id: str | None = None) -> bool:
        """Atomically claim a pending item. Returns True only for the caller that won."""

        where, params = _item_filter(queue_id, tenant_id)
        params["now"] = to_iso(self._clock())
        q = text(
            f"""
            UPDATE email_queue
            SET status = 'processing', processing_started_at = :now, updated_at = :now
            WHERE {where} AND status = 'pending'
            """
        )
        with persistence_errors("mark_as_processing"):
            with self.engine.begin() as conn:
                claimed = conn.execute(q, params).rowcount

        if not claimed:
            logger.debug("queue_claim_lost", queue_id=queue_id)
            return False
        return True

    def mark_as_completed(
        self, queue_id: str, result: dict[str, Any] | None = None, tenant_id: str | None = None
    ) -> bool:
        return self._transition(
            queue_id,
            QueueStatus.COMPLETED,
            expected=(QueueStatus.PROCESSING,),
            sets={
                "result_json": dumps(result) if result is not None else None,
                "processing_completed_at": to_iso(self._clock()),
            },
            tenant_id=tenant_id,
        )

    def mark_as_failed(
        self, queue_id: str, reason: str, should_retry: bool = True, tenant_id: str | None = None
    ) -> bool:
        """Record a processing failure.

        With retries left the item goes back to `pending`, scheduled
        `2^n * queue_retry_base_minutes` later; otherwise it becomes `failed`.
        """
        item = self.get_queue_item(queue_id, tenant_id)
        if item is None:
            logger.warning("queue_item_not_found", queue_id=queue_id, operation="fail")
            return False

        retry_count = item.retry_count + 1
        if should_retry and retry_count <= item.max_retries:
            delay = timedelta(minutes=(2**retry_count) * self.settings.queue_retry_base_minutes)
            scheduled_for = self._clock() + delay
            logger.info(
                "queue_item_retry_scheduled",
                queue_id=queue_id,
                retry_count=retry_count,
                scheduled_for=to_iso(scheduled_for),
            )
            return self._transition(
                queue_id,
                QueueStatus.PENDING,
                expected=(QueueStatus.PROCESSING,),
                sets={
                    "retry_count": retry_count,
                    "scheduled_for": to_iso(scheduled_for),
                    "failure_reason": reason,
                },
                tenant_id=tenant_id,
            )

        logger.warning("queue_item_failed", queue_id=queue_id, retry_count=retry_count, reason=reason)
        return self._transition(
            queue_id,
            QueueStatus.FAILED,
            expected=(QueueStatus.PROCESSING,),
            sets={
                "retry_count": retry_count,
                "failure_reason": reason,
                "processing_completed_at": to_iso(self._clock()),
            },
            tenant_id=tenant_id,
        )

    def mark_as_pending_review(
        self, queue_id: str, reason: str | None = None, tenant_id: str | None = None
    ) -> bool:
        return self._transition(
            queue_id,
            QueueStatus.PENDING_REVIEW,
            expected=(QueueStatus.PENDING, QueueStatus.PROCESSING),
            sets={"failure_reason": reason, "processing_completed_at": to_iso(self._clock())},
            tenant_id=tenant_id,
        )

    def resolve_review(
        self, queue_id: str, result: dict[str, Any] | None = None, tenant_id: str | None = None
    ) -> bool:
        """Manual resolution of an item parked for human review."""

        return self._transition(
            queue_id,
            QueueStatus.COMPLETED,
            expected=(QueueStatus.PENDING_REVIEW,),
            sets={"result_json": dumps(result) if result is not None else None},
            tenant_id=tenant_id,
        )

    def resubmit(self, queue_id: str, tenant_id: str | None = None) -> bool:
        """Send a failed item back through the full pipeline."""

        return self._transition(
            queue_id,
            QueueStatus.PENDING,
            expected=(QueueStatus.FAILED,),
            sets={
                "scheduled_for": to_iso(self._clock()),
                "failure_reason": None,
                "processing_started_at": None,
                "processing_completed_at": None,
            },
            tenant_id=tenant_id,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_queue_stats(self, tenant_id: str | None = None) -> QueueStats:
        where = ""
        params: dict[str, Any] = {}
        if tenant_id is not None:
            where = "WHERE tenant_id = :tenant_id"
            params["tenant_id"] = tenant_id

        q = text(
            f"""
            SELECT status, priority, created_at, processing_started_at, processing_completed_at
            FROM email_queue
            {where}
            """
        )
        with persistence_errors("get_queue_stats"):
            with self.engine.begin() as conn:
                rows = conn.execute(q, params).fetchall()

        stats = QueueStats(total=len(rows))
        total_ms = 0.0
        completed = 0
        for status, priority, created_at, started_at, completed_at in rows:
            stats.by_status[status] = stats.by_status.get(status, 0) + 1
            stats.priorities[priority_band(int(priority))] += 1

            if status == QueueStatus.PENDING.value:
                created = from_iso(created_at)
                if stats.oldest_pending is None or created < stats.oldest_pending:
                    stats.oldest_pending = created

            if status == QueueStatus.COMPLETED.value and started_at and completed_at:
                total_ms += (from_iso(completed_at) - from_iso(started_at)).total_seconds() * 1000
                completed += 1

        if completed:
            stats.average_processing_ms = total_ms / completed
        return stats

    def cleanup_old_items(self, days: int | None = None) -> int:
        """Delete completed and failed items older than `days` days."""

        days = self.settings.queue_cleanup_days if days is None else days
        cutoff = self._clock() - timedelta(days=days)
        q = text(
            """
            DELETE FROM email_queue
            WHERE created_at < :cutoff AND status IN ('completed', 'failed')
            """
        )
        with persistence_errors("cleanup_old_items"):
            with self.engine.begin() as conn:
                removed = conn.execute(q, {"cutoff": to_iso(cutoff)}).rowcount

        logger.info("queue_cleanup_complete", days=days, removed=removed)
        return int(removed or 0)

    def reprocess_failed_items(self, tenant_id: str | None = None, max_age_hours: int = 24) -> int:
        """Resubmit items that failed within the last `max_age_hours` hours."""

        cutoff = self._clock() - timedelta(hours=max_age_hours)
        where = ["status = 'failed'", "updated_at >= :cutoff"]
        params: dict[str, Any] = {"cutoff": to_iso(cutoff)}
        if tenant_id is not None:
            where.append("tenant_id = :tenant_id")
            params["tenant_id"] = tenant_id

        q = text(f"SELECT id FROM email_queue WHERE {' AND '.join(where)} ORDER BY seq ASC")
        with persistence_errors("reprocess_failed_items"):
            with self.engine.begin() as conn:
                ids = [r[0] for r in conn.execute(q, params).fetchall()]

        count = sum(1 for queue_id in ids if self.resubmit(queue_id))
        logger.info("queue_failed_items_reprocessed", tenant_id=tenant_id, count=count)
        return count

    def _bulk_status(self, tenant_id: str | None, current: QueueStatus, target: QueueStatus) -> int:
        where = ["status = :current"]
        params: dict[str, Any] = {
            "current": current.value,
            "target": target.value,
            "now": to_iso(self._clock()),
        }
        if tenant_id is not None:
            where.append("tenant_id = :tenant_id")
            params["tenant_id"] = tenant_id

        extra = ", scheduled_for = :now" if target == QueueStatus.PENDING else ""
        q = text(
            f"""
            UPDATE email_queue
            SET status = :target, updated_at = :now{extra}
            WHERE {" AND ".join(where)}
            """
        )
        with persistence_errors(f"queue_bulk_{target.value}"):
            with self.engine.begin() as conn:
                return int(conn.execute(q, params).rowcount or 0)

    def pause_queue(self, tenant_id: str | None = None) -> int:
        count = self._bulk_status(tenant_id, QueueStatus.PENDING, QueueStatus.PAUSED)
        logger.info("queue_paused", tenant_id=tenant_id, count=count)
        return count

    def resume_queue(self, tenant_id: str | None = None) -> int:
        count = self._bulk_status(tenant_id, QueueStatus.PAUSED, QueueStatus.PENDING)
        logger.info("queue_resumed", tenant_id=tenant_id, count=count)
        return count

    def raise_priority_for_sender(
        self,
        tenant_id: str,
        from_address: str,
        subject: str,
        priority: int,
    ) -> int:
        """Raise pending items from one sender with one subject to `priority`."""

        q = text(
            """
            UPDATE email_queue
            SET priority = :priority, updated_at = :now
            WHERE tenant_id = :tenant_id
              AND from_address = :from_address
              AND subject = :subject
              AND status = 'pending'
              AND priority < :priority
            """
        )
        with persistence_errors("raise_priority_for_sender"):
            with self.engine.begin() as conn:
                return int(
                    conn.execute(
                        q,
                        {
                            "tenant_id": tenant_id,
                            "from_address": from_address,
                            "subject": subject,
                            "priority": priority,
                            "now": to_iso(self._clock()),
                        },
                    ).rowcount
                    or 0
                )
