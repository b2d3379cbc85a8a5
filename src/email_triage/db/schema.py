"""Runtime schema bootstrap.

Every statement is idempotent (`IF NOT EXISTS`) and uses only types shared by
SQLite and PostgreSQL, so the same bootstrap runs in tests and production.

Tables:
- email_queue (processing lifecycle)
- escalation_rules (tenant business rules)
- escalation_log (append-only escalation audit trail)
- escalation_cases, support_tickets, customer_callbacks (escalation side effects)
- ai_responses (drafted replies awaiting delivery)
- processing_log (one row per pipeline run, feeds stats)
- style_profiles, response_templates, tenant_settings (tenant configuration)
"""

from __future__ import annotations

import structlog
from sqlalchemy import text

logger = structlog.get_logger()

# SQLite executes one statement per call, so DDL is kept as a list.
_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS email_queue (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        from_address TEXT NOT NULL,
        to_address TEXT,
        subject TEXT NOT NULL,
        body TEXT,
        provider TEXT,
        priority INTEGER NOT NULL DEFAULT 50,
        status TEXT NOT NULL DEFAULT 'pending',
        retry_count INTEGER NOT NULL DEFAULT 0,
        max_retries INTEGER NOT NULL DEFAULT 3,
        scheduled_for TEXT NOT NULL,
        metadata_json TEXT,
        result_json TEXT,
        failure_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        processing_started_at TEXT,
        processing_completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_email_queue_tenant_status ON email_queue(tenant_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_email_queue_order ON email_queue(priority, scheduled_for, seq)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_email_queue_seq ON email_queue(seq)",
    """
    CREATE TABLE IF NOT EXISTS escalation_rules (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        tenant_id TEXT NOT NULL,
        condition_type TEXT NOT NULL,
        condition_value TEXT,
        action_type TEXT NOT NULL,
        priority INTEGER NOT NULL DEFAULT 1,
        description TEXT,
        enabled INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_escalation_rules_tenant ON escalation_rules(tenant_id, enabled)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_escalation_rules_seq ON escalation_rules(seq)",
    """
    CREATE TABLE IF NOT EXISTS escalation_log (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        reason TEXT NOT NULL,
        rule_id TEXT,
        priority INTEGER NOT NULL,
        triggered_rules_json TEXT NOT NULL,
        results_json TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_escalation_log_tenant ON escalation_log(tenant_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS escalation_cases (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        reason TEXT NOT NULL,
        priority INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'open',
        details_json TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS support_tickets (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        subject TEXT NOT NULL,
        description TEXT,
        priority TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'open',
        customer_email TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customer_callbacks (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        customer_email TEXT,
        customer_name TEXT,
        reason TEXT,
        scheduled_for TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'scheduled',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_responses (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        queue_id TEXT,
        response_text TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        style_applied INTEGER NOT NULL DEFAULT 0,
        fallback_used INTEGER NOT NULL DEFAULT 0,
        confidence INTEGER,
        template_id TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_ai_responses_tenant ON ai_responses(tenant_id, status)",
    """
    CREATE TABLE IF NOT EXISTS processing_log (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        email_ref TEXT NOT NULL,
        queue_id TEXT,
        category TEXT,
        urgency TEXT,
        routing_action TEXT,
        auto_replied INTEGER NOT NULL DEFAULT 0,
        escalated INTEGER NOT NULL DEFAULT 0,
        pipeline TEXT NOT NULL,
        error TEXT,
        processing_time_ms REAL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_processing_log_tenant ON processing_log(tenant_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS style_profiles (
        tenant_id TEXT PRIMARY KEY,
        profile_json TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS response_templates (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        tenant_id TEXT NOT NULL,
        name TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT 'general',
        body_template TEXT NOT NULL,
        is_default INTEGER NOT NULL DEFAULT 0,
        enabled INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_response_templates_seq ON response_templates(seq)",
    """
    CREATE TABLE IF NOT EXISTS tenant_settings (
        tenant_id TEXT PRIMARY KEY,
        settings_json TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


def ensure_schema(engine) -> None:
    """Ensure required tables and indexes exist (idempotent).

    Args:
        engine: SQLAlchemy engine bound to the pipeline database.
    """

    with engine.begin() as conn:
        for statement in _DDL:
            conn.execute(text(statement))

    logger.info("db_schema_ensured", tables=11)
