"""Command-line interface for the email triage pipeline.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from email_triage import __version__
from email_triage.config import Settings, get_settings
from email_triage.db import check_connection, create_db_engine, ensure_schema
from email_triage.exceptions import EmailTriageError, ValidationError
from email_triage.models.email import Email
from email_triage.pipeline import EmailPipeline, QueueWorker
from email_triage.repository import TemplateRepository
from email_triage.utils import configure_logging, retry_on_failure

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="email-triage", description="Email triage pipeline")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL (default: settings database_url)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the pipeline tables if they do not exist")

    process_parser = subparsers.add_parser("process", help="Process emails from a JSON file")
    process_parser.add_argument("file", type=Path, help="JSON file holding one email object or a list")
    process_parser.add_argument("--tenant", required=True, help="Tenant ID")

    worker_parser = subparsers.add_parser("worker", help="Drain the queue through the pipeline")
    worker_parser.add_argument("--tenant", default=None, help="Only process this tenant's items")
    worker_parser.add_argument("--once", action="store_true", help="Process a single batch and exit")

    stats_parser = subparsers.add_parser("stats", help="Show pipeline statistics")
    stats_parser.add_argument("--tenant", required=True, help="Tenant ID")
    stats_parser.add_argument("--timeframe", choices=["24h", "7d", "30d"], default="24h")

    escalate_parser = subparsers.add_parser("escalate", help="Manually escalate an email")
    escalate_parser.add_argument("file", type=Path, help="JSON file holding one email object")
    escalate_parser.add_argument("--tenant", required=True, help="Tenant ID")
    escalate_parser.add_argument("--reason", required=True, help="Why the email is escalated")
    escalate_parser.add_argument("--priority", type=int, default=5, help="Priority 1-10 (default: 5)")

    # Rule management
    rules_parser = subparsers.add_parser("rules", help="Manage escalation rules")
    rules_sub = rules_parser.add_subparsers(dest="rules_command", required=True)

    rules_add = rules_sub.add_parser("add", help="Add an escalation rule")
    rules_add.add_argument("--tenant", required=True, help="Tenant ID")
    rules_add.add_argument("--condition", required=True, help="Rule condition (e.g. high_urgency)")
    rules_add.add_argument("--action", required=True, help="Escalation action (e.g. notify_manager)")
    rules_add.add_argument("--priority", type=int, default=None, help="Priority 1-10")
    rules_add.add_argument("--value", default=None, help="Value for category/urgency/sentiment conditions")
    rules_add.add_argument("--description", default="", help="Human readable description")
    rules_add.add_argument("--disabled", action="store_true", help="Create the rule disabled")

    rules_list = rules_sub.add_parser("list", help="List escalation rules")
    rules_list.add_argument("--tenant", required=True, help="Tenant ID")
    rules_list.add_argument("--all", action="store_true", help="Include disabled rules")

    rules_delete = rules_sub.add_parser("delete", help="Delete an escalation rule")
    rules_delete.add_argument("rule_id", help="Rule ID")
    rules_delete.add_argument("--tenant", required=True, help="Tenant ID")

    # Template management
    templates_parser = subparsers.add_parser("templates", help="Manage outbound reply templates")
    templates_sub = templates_parser.add_subparsers(dest="templates_command", required=True)

    templates_add = templates_sub.add_parser("add", help="Add a reply template")
    templates_add.add_argument("--tenant", required=True, help="Tenant ID")
    templates_add.add_argument("--name", required=True, help="Template name")
    templates_add.add_argument("--body", required=True, help="Template body, e.g. 'Hi {customer_name}\\n\\n{response}'")
    templates_add.add_argument("--category", default="general", help="Email category the template is for")
    templates_add.add_argument("--default", action="store_true", help="Use when no category template matches")

    templates_list = templates_sub.add_parser("list", help="List reply templates")
    templates_list.add_argument("--tenant", required=True, help="Tenant ID")

    # Queue maintenance
    queue_parser = subparsers.add_parser("queue", help="Queue maintenance")
    queue_sub = queue_parser.add_subparsers(dest="queue_command", required=True)

    queue_stats = queue_sub.add_parser("stats", help="Show queue statistics")
    queue_stats.add_argument("--tenant", default=None, help="Tenant ID (default: all tenants)")

    queue_cleanup = queue_sub.add_parser("cleanup", help="Delete old completed and failed items")
    queue_cleanup.add_argument("--days", type=int, default=None, help="Age in days (default: settings)")

    queue_retry = queue_sub.add_parser("retry-failed", help="Resubmit recently failed items")
    queue_retry.add_argument("--tenant", default=None, help="Tenant ID (default: all tenants)")
    queue_retry.add_argument("--max-age-hours", type=int, default=24, help="Only items failed within this window")

    return parser


def _open_engine(settings: Settings, database_url: str | None) -> Engine:
    engine = create_db_engine(database_url or settings.database_url, echo=settings.debug)
    check = retry_on_failure(max_retries=settings.max_retries, delay=1.0, exceptions=(SQLAlchemyError,))(
        check_connection
    )
    check(engine)
    return engine


def _load_emails(path: Path) -> list[Email]:
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read emails from {path}: {e}") from e
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValidationError(f"{path} must hold an email object or a list of them")
    try:
        return [Email.model_validate(d) for d in data]
    except PydanticValidationError as e:
        raise ValidationError(f"{path} holds an invalid email: {e}") from e


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _cmd_init_db(engine: Engine, args: argparse.Namespace) -> int:
    ensure_schema(engine)
    print("Database schema is up to date")
    return 0


async def _cmd_process(pipeline: EmailPipeline, args: argparse.Namespace) -> int:
    emails = _load_emails(args.file)
    results = await pipeline.process_batch(emails, args.tenant)
    _print_json([r.model_dump(mode="json") for r in results])
    return 0 if all(r.pipeline != "rejected" for r in results) else 1


async def _cmd_worker(pipeline: EmailPipeline, settings: Settings, args: argparse.Namespace) -> int:
    worker = QueueWorker(pipeline, settings=settings)
    if args.once:
        results = await worker.run_once(args.tenant)
        print(f"Processed {len(results)} queue items")
        return 0

    await worker.run_forever(args.tenant)
    return 0


def _cmd_stats(pipeline: EmailPipeline, args: argparse.Namespace) -> int:
    stats = pipeline.get_stats(args.tenant, args.timeframe)
    _print_json(stats.model_dump(mode="json"))
    return 0


async def _cmd_escalate(pipeline: EmailPipeline, args: argparse.Namespace) -> int:
    emails = _load_emails(args.file)
    if len(emails) != 1:
        raise ValidationError("escalate expects exactly one email")
    result = await pipeline.manual_escalation(emails[0], args.tenant, args.reason, args.priority)
    _print_json(result.model_dump(mode="json"))
    return 0


def _cmd_rules(pipeline: EmailPipeline, args: argparse.Namespace) -> int:
    rules = pipeline.rules_engine
    if args.rules_command == "add":
        rule = rules.create_rule(
            args.tenant,
            condition=args.condition,
            action=args.action,
            priority=args.priority,
            value=args.value,
            description=args.description,
            enabled=not args.disabled,
        )
        print(f"Created rule {rule.id}")
        return 0

    if args.rules_command == "list":
        for r in rules.list_rules(args.tenant, include_disabled=args.all):
            state = "enabled" if r.enabled else "disabled"
            value = f"={r.value}" if r.value else ""
            print(f"{r.id}\t{r.priority}\t{r.condition}{value}\t{r.action}\t{state}\t{r.description}")
        return 0

    if args.rules_command == "delete":
        if rules.delete_rule(args.tenant, args.rule_id):
            print(f"Deleted rule {args.rule_id}")
            return 0
        print(f"Rule not found: {args.rule_id}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=args.rules_command)
    return 2


def _cmd_templates(engine: Engine, args: argparse.Namespace) -> int:
    repo = TemplateRepository(engine)
    if args.templates_command == "add":
        template = repo.create_template(
            args.tenant,
            name=args.name,
            body_template=args.body,
            category=args.category,
            is_default=args.default,
        )
        print(f"Created template {template.id}")
        return 0

    if args.templates_command == "list":
        for t in repo.list_templates(args.tenant, enabled_only=False):
            flags = ",".join(f for f, on in (("default", t.is_default), ("disabled", not t.enabled)) if on)
            print(f"{t.id}\t{t.category}\t{t.name}\t{flags}")
        return 0

    logger.error("unknown_command", command=args.templates_command)
    return 2


def _cmd_queue(pipeline: EmailPipeline, settings: Settings, args: argparse.Namespace) -> int:
    queue = pipeline.queue
    if args.queue_command == "stats":
        _print_json(queue.get_queue_stats(args.tenant).model_dump(mode="json"))
        return 0

    if args.queue_command == "cleanup":
        deleted = queue.cleanup_old_items(args.days or settings.queue_cleanup_days)
        print(f"Deleted {deleted} old queue items")
        return 0

    if args.queue_command == "retry-failed":
        count = queue.reprocess_failed_items(args.tenant, max_age_hours=args.max_age_hours)
        print(f"Resubmitted {count} failed queue items")
        return 0

    logger.error("unknown_command", command=args.queue_command)
    return 2


def _dispatch(parsed: argparse.Namespace, settings: Settings) -> int:
    engine = _open_engine(settings, parsed.database_url)
    if parsed.command == "init-db":
        return _cmd_init_db(engine, parsed)

    ensure_schema(engine)
    if parsed.command == "templates":
        return _cmd_templates(engine, parsed)

    pipeline = EmailPipeline.from_engine(engine, settings)
    if parsed.command == "process":
        return asyncio.run(_cmd_process(pipeline, parsed))
    if parsed.command == "worker":
        return asyncio.run(_cmd_worker(pipeline, settings, parsed))
    if parsed.command == "stats":
        return _cmd_stats(pipeline, parsed)
    if parsed.command == "escalate":
        return asyncio.run(_cmd_escalate(pipeline, parsed))
    if parsed.command == "rules":
        return _cmd_rules(pipeline, parsed)
    if parsed.command == "queue":
        return _cmd_queue(pipeline, settings, parsed)

    logger.error("unknown_command", command=parsed.command)
    return 2


def main(args: list[str] | None = None) -> int:
    """Main entry point for the email triage CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings)

    logger.info("email_triage_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        return _dispatch(parsed, settings)
    except ValidationError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2
    except (EmailTriageError, SQLAlchemyError) as e:
        logger.error("command_failed", command=parsed.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
