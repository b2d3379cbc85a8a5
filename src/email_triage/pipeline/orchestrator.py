"""Email processing pipeline.

Composes queue, classifier, rules engine, router, reply generation,
templating and escalation for one email at a time:

    validate -> enqueue -> claim -> classify -> evaluate rules -> route
      -> (auto reply: generate + template) -> (escalate) -> (notify)
      -> complete | pending review -> processing log

Only invalid input raises (`ValidationError`). Any other failure degrades to
the fixed "we received your message" reply with `pipeline='fallback'`, and
storage failures along the way are logged without interrupting processing.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Sequence

import structlog
from sqlalchemy.engine import Engine

from email_triage.cache import TTLCache
from email_triage.classification import EmailClassifier
from email_triage.config import Settings
from email_triage.escalation import (
    EscalationActionExecutor,
    EscalationEngine,
    LoggingNotificationChannel,
    NotificationChannel,
)
from email_triage.escalation.notifications import deliver
from email_triage.exceptions import PersistenceError, ValidationError
from email_triage.models.classification import Classification
from email_triage.models.email import Email
from email_triage.models.escalation import EscalationResult
from email_triage.models.pipeline import TIMEFRAME_HOURS, PipelineResult, PipelineStats
from email_triage.models.queue import QueueItem, QueueStatus
from email_triage.models.responses import GeneratedResponse
from email_triage.models.routing import RoutingAction, RoutingDecision
from email_triage.models.rules import TriggeredRule
from email_triage.models.tenant import TenantSettings
from email_triage.ollama.client import LLMClient, OllamaClient
from email_triage.queue import EmailQueue
from email_triage.repository import (
    EscalationRepository,
    ProcessingLogRepository,
    ResponseRepository,
    RuleRepository,
    StyleProfileRepository,
    TemplateRepository,
    TenantSettingsRepository,
)
from email_triage.responses import ResponseGenerator, TemplateEngine
from email_triage.responses.fallback_templates import received_message_reply
from email_triage.routing import EmailRouter
from email_triage.rules import BusinessRulesEngine
from email_triage.tenants import TenantSettingsProvider
from email_triage.utils import from_iso, utcnow

logger = structlog.get_logger()

FALLBACK_CONFIDENCE = 25
REVIEW_ACTIONS = frozenset({RoutingAction.QUEUE_FOR_REVIEW, RoutingAction.DEFAULT})


def validate_email(email: Email, tenant_id: str) -> None:
    """Raise `ValidationError` for input the pipeline cannot process."""

    errors: list[str] = []
    if not (tenant_id or "").strip():
        errors.append("tenant_id is required")
    if not (email.from_address or "").strip():
        errors.append("from is required")
    if not (email.subject or "").strip():
        errors.append("subject is required")
    if errors:
        raise ValidationError("; ".join(errors))


def email_from_queue_item(item: QueueItem) -> Email:
    received_at = item.metadata.get("received_at")
    data: dict[str, Any] = {
        "id": item.email_ref,
        "from_address": item.from_address,
        "to": item.to,
        "subject": item.subject,
        "body": item.body,
        "provider": item.provider,
        "provider_message_id": item.metadata.get("provider_message_id"),
    }
    if received_at:
        data["received_at"] = from_iso(received_at)
    return Email(**data)


class EmailPipeline:
    def __init__(
        self,
        *,
        queue: EmailQueue,
        classifier: EmailClassifier,
        rules_engine: BusinessRulesEngine,
        router: EmailRouter,
        generator: ResponseGenerator,
        template_engine: TemplateEngine,
        escalation: EscalationEngine,
        tenant_settings: TenantSettingsProvider,
        responses: ResponseRepository,
        processing_log: ProcessingLogRepository,
        notifier: NotificationChannel | None = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        from email_triage.config import get_settings

        self.queue = queue
        self.classifier = classifier
        self.rules_engine = rules_engine
        self.router = router
        self.generator = generator
        self.template_engine = template_engine
        self.escalation = escalation
        self.tenant_settings = tenant_settings
        self.responses = responses
        self.processing_log = processing_log
        self.notifier = notifier or LoggingNotificationChannel()
        self.settings = settings or get_settings()
        self._clock = clock

    @classmethod
    def from_engine(
        cls,
        engine: Engine,
        settings: Optional[Settings] = None,
        llm: LLMClient | None = None,
        notifier: NotificationChannel | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "EmailPipeline":
        """Wire a pipeline and all of its collaborators onto one database engine."""

        from email_triage.config import get_settings

        settings = settings or get_settings()
        if llm is None and settings.llm_enabled:
            llm = OllamaClient(settings)
        notifier = notifier or LoggingNotificationChannel()

        def cache() -> TTLCache | None:
            if not settings.cache_enabled:
                return None
            return TTLCache(ttl=settings.cache_ttl, max_size=settings.cache_max_size)

        tenant_settings = TenantSettingsProvider(TenantSettingsRepository(engine), cache())
        queue = EmailQueue(engine, settings, clock=clock)
        responses = ResponseRepository(engine)
        escalations = EscalationRepository(engine)
        rules_engine = BusinessRulesEngine(
            RuleRepository(engine),
            tenant_settings=tenant_settings,
            settings=settings,
            cache=cache(),
            clock=clock,
        )
        executor = EscalationActionExecutor(
            escalations,
            queue,
            responses,
            tenant_settings=tenant_settings,
            notifier=notifier,
            clock=clock,
        )
        return cls(
            queue=queue,
            classifier=EmailClassifier(llm, settings),
            rules_engine=rules_engine,
            router=EmailRouter(tenant_settings, clock=clock),
            generator=ResponseGenerator(llm, StyleProfileRepository(engine), settings),
            template_engine=TemplateEngine(TemplateRepository(engine), clock=clock),
            escalation=EscalationEngine(rules_engine, executor, escalations, clock=clock),
            tenant_settings=tenant_settings,
            responses=responses,
            processing_log=ProcessingLogRepository(engine),
            notifier=notifier,
            settings=settings,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_email(self, email: Email, tenant_id: str) -> PipelineResult:
        """Process one inbound email end to end.

        Raises:
            ValidationError: If the email or tenant is missing required fields.
        """
        validate_email(email, tenant_id)

        queue_id: str | None = None
        try:
            queue_id = self.queue.add_to_queue(email, tenant_id)
        except PersistenceError as e:
            logger.error("pipeline_enqueue_failed", email_id=email.id, tenant_id=tenant_id, error=str(e))

        if queue_id is not None:
            self._store_call("claim", self.queue.mark_as_processing, queue_id, tenant_id=tenant_id)

        return await self._run(email, tenant_id, queue_id)

    async def process_queue_item(self, item: QueueItem) -> PipelineResult | None:
        """Process an already queued item from the start.

        Pending items are claimed first; when another worker wins the claim
        nothing is done and None is returned.
        """
        if item.status == QueueStatus.PENDING and not self.queue.mark_as_processing(item.id, item.tenant_id):
            logger.info("queue_item_claim_lost", queue_id=item.id, tenant_id=item.tenant_id)
            return None

        email = email_from_queue_item(item)
        # Items enqueued by an immediate_response escalation are not escalated again.
        skip_escalation = bool(item.metadata.get("escalation"))
        return await self._run(email, item.tenant_id, item.id, skip_escalation=skip_escalation)

    async def process_batch(self, emails: Sequence[Email], tenant_id: str) -> list[PipelineResult]:
        """Process emails one after another. Invalid emails yield `rejected` results."""

        results: list[PipelineResult] = []
        for email in emails:
            try:
                results.append(await self.process_email(email, tenant_id))
            except ValidationError as e:
                logger.warning("pipeline_email_rejected", email_id=email.id, tenant_id=tenant_id, error=str(e))
                results.append(
                    PipelineResult(
                        email_id=email.id,
                        tenant_id=tenant_id,
                        pipeline="rejected",
                        error=str(e),
                    )
                )
        return results

    async def manual_escalation(
        self, email: Email, tenant_id: str, reason: str, priority: int = 5
    ) -> EscalationResult:
        if not (reason or "").strip():
            raise ValidationError("reason is required")
        if not 1 <= priority <= 10:
            raise ValidationError("Priority must be between 1 and 10")
        return await self.escalation.manual_escalation(email, tenant_id, reason, priority)

    def get_stats(self, tenant_id: str, timeframe: str = "24h") -> PipelineStats:
        """Aggregate processing counts for a tenant over `24h`, `7d` or `30d`."""

        if timeframe not in TIMEFRAME_HOURS:
            raise ValidationError(f"Invalid timeframe: {timeframe}")

        since = self._clock() - timedelta(hours=TIMEFRAME_HOURS[timeframe])
        rows = self.processing_log.list_since(tenant_id, since)

        stats = PipelineStats(tenant_id=tenant_id, timeframe=timeframe, processed=len(rows))
        for row in rows:
            if row["pipeline"] == "complete":
                stats.completed += 1
            elif row["pipeline"] == "fallback":
                stats.fallbacks += 1
            stats.auto_replies += int(row["auto_replied"])
            stats.escalations += int(row["escalated"])
            for field, bucket in (
                ("category", stats.by_category),
                ("urgency", stats.by_urgency),
                ("routing_action", stats.by_action),
            ):
                if row[field]:
                    bucket[row[field]] = bucket.get(row[field], 0) + 1

        stats.escalation_records = len(self.escalation.repository.list_records(tenant_id, since=since))
        stats.queue = self.queue.get_queue_stats(tenant_id)
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _store_call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a storage call; failures are logged and yield None."""

        try:
            return fn(*args, **kwargs)
        except PersistenceError as e:
            logger.error("pipeline_store_failed", operation=operation, error=str(e))
            return None

    def _load_tenant(self, tenant_id: str) -> TenantSettings:
        try:
            return self.tenant_settings.get(tenant_id)
        except PersistenceError as e:
            logger.warning("pipeline_tenant_settings_unavailable", tenant_id=tenant_id, error=str(e))
            return TenantSettings()

    async def _run(
        self,
        email: Email,
        tenant_id: str,
        queue_id: str | None,
        skip_escalation: bool = False,
    ) -> PipelineResult:
        started = time.perf_counter()
        tenant = self._load_tenant(tenant_id)
        classification: Classification | None = None

        try:
            classification = await self.classifier.classify(email)
            triggered = self.rules_engine.evaluate_rules(email, tenant_id, classification)
            routing = self.router.route(classification, tenant_id)

            if queue_id is not None:
                self._store_call(
                    "update_queue_item",
                    self.queue.update_queue_item,
                    queue_id,
                    {
                        "priority": routing.priority,
                        "metadata": {
                            "classification": classification.model_dump(mode="json"),
                            "routing": routing.model_dump(mode="json"),
                        },
                    },
                    tenant_id=tenant_id,
                )

            generated, final_response = await self._auto_reply(
                email, tenant_id, queue_id, tenant, classification, routing
            )
            escalation = await self._escalate(
                email, tenant_id, tenant, classification, routing, triggered, skip_escalation
            )
            notification = await self._notify(email, tenant_id, tenant, classification, routing)
        except Exception as e:  # noqa: BLE001
            return self._fallback(email, tenant_id, queue_id, tenant, classification, e, started)

        elapsed_ms = (time.perf_counter() - started) * 1000
        if queue_id is not None:
            if routing.action in REVIEW_ACTIONS:
                self._store_call(
                    "mark_pending_review",
                    self.queue.mark_as_pending_review,
                    queue_id,
                    routing.routing_reason,
                    tenant_id=tenant_id,
                )
            else:
                self._store_call(
                    "mark_completed",
                    self.queue.mark_as_completed,
                    queue_id,
                    {
                        "category": classification.category.value,
                        "routing_action": routing.action.value,
                        "auto_replied": generated is not None,
                        "escalated": bool(escalation and escalation.escalated),
                    },
                    tenant_id=tenant_id,
                )

        self._store_call(
            "record_processing_log",
            self.processing_log.record,
            tenant_id,
            email.id,
            pipeline="complete",
            queue_id=queue_id,
            category=classification.category.value,
            urgency=classification.urgency.value,
            routing_action=routing.action.value,
            auto_replied=generated is not None,
            escalated=bool(escalation and escalation.escalated),
            processing_time_ms=elapsed_ms,
            created_at=self._clock(),
        )

        logger.info(
            "email_processed",
            email_id=email.id,
            tenant_id=tenant_id,
            queue_id=queue_id,
            category=classification.category.value,
            action=routing.action.value,
            escalated=bool(escalation and escalation.escalated),
            processing_time_ms=round(elapsed_ms, 2),
        )
        return PipelineResult(
            email_id=email.id,
            tenant_id=tenant_id,
            queue_id=queue_id,
            classification=classification,
            routing=routing,
            generated_response=generated,
            final_response=final_response,
            triggered_rules=triggered,
            escalation=escalation,
            notification=notification,
            pipeline="complete",
            processing_time_ms=elapsed_ms,
            processed_at=self._clock(),
        )

    async def _auto_reply(
        self,
        email: Email,
        tenant_id: str,
        queue_id: str | None,
        tenant: TenantSettings,
        classification: Classification,
        routing: RoutingDecision,
    ) -> tuple[GeneratedResponse | None, str | None]:
        if not routing.auto_reply:
            return None, None

        category = classification.category.value
        generated = await self.generator.generate_response(tenant_id, email, category, tenant.business)
        final_response, template_id = self.template_engine.render(
            tenant_id, generated.text, category, tenant.business, email
        )
        if template_id is not None:
            generated = generated.model_copy(update={"template_id": template_id})

        self._store_call(
            "store_response",
            self.responses.store_response,
            tenant_id,
            email.id,
            final_response,
            queue_id=queue_id,
            status="pending",
            style_applied=generated.style_applied,
            fallback_used=generated.fallback_used,
            confidence=generated.confidence,
            template_id=generated.template_id,
        )
        return generated, final_response

    async def _escalate(
        self,
        email: Email,
        tenant_id: str,
        tenant: TenantSettings,
        classification: Classification,
        routing: RoutingDecision,
        triggered: list[TriggeredRule],
        skip: bool,
    ) -> EscalationResult | None:
        if skip:
            return None
        if not tenant.notifications.escalation_enabled:
            logger.info("escalation_disabled_for_tenant", email_id=email.id, tenant_id=tenant_id)
            return None

        if triggered:
            return await self.escalation.process_escalation(
                email, tenant_id, classification, routing, triggered_rules=triggered
            )
        if routing.escalate:
            return await self.escalation.routing_escalation(email, tenant_id, routing, classification)
        return None

    async def _notify(
        self,
        email: Email,
        tenant_id: str,
        tenant: TenantSettings,
        classification: Classification,
        routing: RoutingDecision,
    ) -> dict[str, Any] | None:
        if not routing.notify_immediately:
            return None
        if not tenant.notifications.immediate_notification:
            logger.info("immediate_notification_disabled", email_id=email.id, tenant_id=tenant_id)
            return None

        outcome = await deliver(
            self.notifier,
            tenant_id,
            "immediate_alert",
            {
                "recipient": tenant.business.email,
                "subject": f"Immediate attention: {email.subject}",
                "from": email.from_address,
                "category": classification.category.value,
                "urgency": classification.urgency.value,
                "reason": routing.routing_reason,
            },
        )
        return outcome.model_dump()

    def _fallback(
        self,
        email: Email,
        tenant_id: str,
        queue_id: str | None,
        tenant: TenantSettings,
        classification: Classification | None,
        error: Exception,
        started: float,
    ) -> PipelineResult:
        logger.warning(
            "pipeline_fell_back",
            email_id=email.id,
            tenant_id=tenant_id,
            queue_id=queue_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        text = received_message_reply(tenant.business)
        classification = classification or Classification.default("Pipeline fallback")
        elapsed_ms = (time.perf_counter() - started) * 1000

        if queue_id is not None:
            self._store_call("mark_failed", self.queue.mark_as_failed, queue_id, str(error), tenant_id=tenant_id)
        self._store_call(
            "record_processing_log",
            self.processing_log.record,
            tenant_id,
            email.id,
            pipeline="fallback",
            queue_id=queue_id,
            category=classification.category.value,
            urgency=classification.urgency.value,
            error=str(error),
            processing_time_ms=elapsed_ms,
            created_at=self._clock(),
        )

        return PipelineResult(
            email_id=email.id,
            tenant_id=tenant_id,
            queue_id=queue_id,
            classification=classification,
            generated_response=GeneratedResponse(
                text=text,
                style_applied=False,
                confidence=FALLBACK_CONFIDENCE,
                template_id="fallback:received",
                fallback_used=True,
            ),
            final_response=text,
            pipeline="fallback",
            error=str(error),
            processing_time_ms=elapsed_ms,
            processed_at=self._clock(),
        )
