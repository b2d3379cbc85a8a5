"""Unit tests for the email processing pipeline."""

import pytest

from email_triage.escalation import LoggingNotificationChannel
from email_triage.exceptions import PersistenceError, ValidationError
from email_triage.models import (
    Email,
    EmailCategory,
    NotificationSettings,
    QueueStatus,
    RoutingAction,
    TenantSettings,
    UrgencyLevel,
)
from email_triage.pipeline import EmailPipeline, validate_email
from email_triage.queue import EmailQueue
from email_triage.repository import ResponseRepository, TemplateRepository

GREETING = Email(id="email-hello", from_address="kim@example.com", subject="Hello", body="Lovely weather today.")


class _ExplodingClassifier:
    async def classify(self, email):
        raise RuntimeError("classifier crashed")


class _DownChannel:
    async def send(self, tenant_id, type, payload):
        raise ConnectionError("smtp relay down")


class _UnavailableQueue(EmailQueue):
    def add_to_queue(self, *args, **kwargs):
        raise PersistenceError("database is locked")


@pytest.fixture
def notifier() -> LoggingNotificationChannel:
    return LoggingNotificationChannel()


@pytest.fixture
def pipeline(db_engine, mock_settings, notifier, clock) -> EmailPipeline:
    return EmailPipeline.from_engine(db_engine, settings=mock_settings, notifier=notifier, clock=clock)


class TestValidateEmail:
    def test_valid(self, inquiry_email, tenant_id) -> None:
        validate_email(inquiry_email, tenant_id)

    def test_every_missing_field_is_reported(self) -> None:
        with pytest.raises(ValidationError) as exc:
            validate_email(Email(), " ")

        message = str(exc.value)
        assert "tenant_id" in message
        assert "from" in message
        assert "subject" in message


class TestProcessEmail:
    """Test suite for EmailPipeline.process_email."""

    @pytest.mark.asyncio
    async def test_critical_email_is_escalated_and_notified(self, pipeline, notifier, tenant_id, urgent_email) -> None:
        result = await pipeline.process_email(urgent_email, tenant_id)

        assert result.pipeline == "complete"
        assert result.classification.category == EmailCategory.URGENT
        assert result.classification.urgency == UrgencyLevel.CRITICAL
        assert result.routing.action == RoutingAction.NOTIFY_IMMEDIATELY
        assert result.escalation.escalated is True
        assert result.escalation.highest_priority == 10
        assert result.notification["success"] is True
        assert [n["type"] for n in notifier.sent] == ["immediate_alert"]
        assert result.final_response

        item = pipeline.queue.get_queue_item(result.queue_id)
        assert item.status == QueueStatus.COMPLETED
        assert item.priority == result.routing.priority
        assert item.metadata["classification"]["category"] == "urgent"
        assert item.result["escalated"] is True

    @pytest.mark.asyncio
    async def test_inquiry_gets_a_stored_reply(self, pipeline, db_engine, tenant_id, inquiry_email) -> None:
        result = await pipeline.process_email(inquiry_email, tenant_id)

        assert result.routing.action == RoutingAction.AUTO_REPLY
        assert result.escalation is None
        assert result.notification is None
        assert result.generated_response.fallback_used is True
        assert result.generated_response.template_id == "fallback:inquiry"

        stored = ResponseRepository(db_engine).list_responses(tenant_id, status="pending")
        assert [r["response_text"] for r in stored] == [result.final_response]
        assert stored[0]["queue_id"] == result.queue_id

    @pytest.mark.asyncio
    async def test_unmatched_email_waits_for_review(self, pipeline, tenant_id) -> None:
        result = await pipeline.process_email(GREETING, tenant_id)

        assert result.routing.action == RoutingAction.QUEUE_FOR_REVIEW
        assert result.generated_response is None
        assert pipeline.queue.get_queue_item(result.queue_id).status == QueueStatus.PENDING_REVIEW

    @pytest.mark.asyncio
    async def test_invalid_email_is_rejected_before_queueing(self, pipeline, tenant_id) -> None:
        with pytest.raises(ValidationError):
            await pipeline.process_email(Email(from_address="kim@example.com"), tenant_id)

        assert pipeline.queue.get_queue_stats(tenant_id).total == 0

    @pytest.mark.asyncio
    async def test_triggered_rules_drive_escalation(self, pipeline, tenant_id, complaint_email) -> None:
        rule = pipeline.rules_engine.create_rule(tenant_id, "complaint_detected", "create_ticket", priority=7)

        result = await pipeline.process_email(complaint_email, tenant_id)

        assert [r.rule_id for r in result.triggered_rules] == [rule.id]
        assert [a.action for a in result.escalation.results] == ["create_ticket"]
        assert result.escalation.highest_priority == 7

    @pytest.mark.asyncio
    async def test_tenant_template_wraps_the_reply(self, pipeline, db_engine, tenant_id, inquiry_email) -> None:
        template = TemplateRepository(db_engine).create_template(
            tenant_id, name="Signed", body_template="{response}\n\n-- Sent by {business_name}", is_default=True
        )

        result = await pipeline.process_email(inquiry_email, tenant_id)

        assert result.generated_response.template_id == template.id
        assert result.final_response.startswith(result.generated_response.text)
        assert result.final_response.endswith("-- Sent by Our Business")

    @pytest.mark.asyncio
    async def test_escalation_disabled_for_tenant(self, pipeline, tenant_id, urgent_email) -> None:
        pipeline.tenant_settings.save(
            tenant_id,
            TenantSettings(notifications=NotificationSettings(escalation_enabled=False, immediate_notification=False)),
        )

        result = await pipeline.process_email(urgent_email, tenant_id)

        assert result.routing.escalate is True
        assert result.escalation is None
        assert result.notification is None

    @pytest.mark.asyncio
    async def test_failure_degrades_to_received_reply(self, pipeline, tenant_id, inquiry_email) -> None:
        pipeline.classifier = _ExplodingClassifier()

        result = await pipeline.process_email(inquiry_email, tenant_id)

        assert result.pipeline == "fallback"
        assert result.error == "classifier crashed"
        assert result.classification.category == EmailCategory.GENERAL
        assert result.generated_response.template_id == "fallback:received"
        assert "We have received your message" in result.final_response

        item = pipeline.queue.get_queue_item(result.queue_id)
        assert item.status == QueueStatus.PENDING
        assert item.retry_count == 1
        assert item.failure_reason == "classifier crashed"

    @pytest.mark.asyncio
    async def test_queue_outage_does_not_stop_processing(
        self, db_engine, mock_settings, clock, tenant_id, inquiry_email
    ) -> None:
        pipeline = EmailPipeline.from_engine(db_engine, settings=mock_settings, clock=clock)
        pipeline.queue = _UnavailableQueue(db_engine, mock_settings, clock=clock)

        result = await pipeline.process_email(inquiry_email, tenant_id)

        assert result.pipeline == "complete"
        assert result.queue_id is None
        assert result.final_response

    @pytest.mark.asyncio
    async def test_raising_notifier_does_not_fail_the_run(
        self, db_engine, mock_settings, clock, tenant_id, urgent_email
    ) -> None:
        pipeline = EmailPipeline.from_engine(db_engine, settings=mock_settings, notifier=_DownChannel(), clock=clock)

        result = await pipeline.process_email(urgent_email, tenant_id)

        assert result.pipeline == "complete"
        assert result.error is None
        assert result.notification["success"] is False
        assert result.notification["error"] == "smtp relay down"
        assert result.escalation.escalated is True
        assert pipeline.queue.get_queue_item(result.queue_id).status == QueueStatus.COMPLETED
        assert len(pipeline.escalation.repository.list_records(tenant_id)) == 1


class TestQueueItems:
    """Test suite for processing already-queued items."""

    @pytest.mark.asyncio
    async def test_pending_item_is_claimed_and_processed(self, pipeline, tenant_id, inquiry_email) -> None:
        queue_id = pipeline.queue.add_to_queue(inquiry_email, tenant_id)

        result = await pipeline.process_queue_item(pipeline.queue.get_queue_item(queue_id))

        assert result.email_id == inquiry_email.id
        assert pipeline.queue.get_queue_item(queue_id).status == QueueStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_lost_claim_does_nothing(self, pipeline, tenant_id, inquiry_email) -> None:
        queue_id = pipeline.queue.add_to_queue(inquiry_email, tenant_id)
        item = pipeline.queue.get_queue_item(queue_id)
        pipeline.queue.mark_as_processing(queue_id)

        assert await pipeline.process_queue_item(item) is None

    @pytest.mark.asyncio
    async def test_escalation_follow_up_is_not_escalated_again(self, pipeline, tenant_id, urgent_email) -> None:
        queue_id = pipeline.queue.add_to_queue(urgent_email, tenant_id, priority=95, metadata={"escalation": True})

        result = await pipeline.process_queue_item(pipeline.queue.get_queue_item(queue_id))

        assert result.routing.escalate is True
        assert result.escalation is None


class TestBatchAndStats:
    """Test suite for batch processing, manual escalation and statistics."""

    @pytest.mark.asyncio
    async def test_batch_rejects_invalid_emails_individually(self, pipeline, tenant_id, inquiry_email) -> None:
        results = await pipeline.process_batch([inquiry_email, Email(from_address="x@example.com")], tenant_id)

        assert [r.pipeline for r in results] == ["complete", "rejected"]
        assert "subject" in results[1].error

    @pytest.mark.asyncio
    async def test_manual_escalation_validates_input(self, pipeline, tenant_id, inquiry_email) -> None:
        with pytest.raises(ValidationError):
            await pipeline.manual_escalation(inquiry_email, tenant_id, "  ")
        with pytest.raises(ValidationError):
            await pipeline.manual_escalation(inquiry_email, tenant_id, "Called twice", priority=11)

        result = await pipeline.manual_escalation(inquiry_email, tenant_id, "Called twice", priority=6)
        assert result.escalated is True

    @pytest.mark.asyncio
    async def test_stats(self, pipeline, clock, tenant_id, urgent_email, inquiry_email) -> None:
        await pipeline.process_email(urgent_email, tenant_id)
        await pipeline.process_email(inquiry_email, tenant_id)
        await pipeline.process_email(GREETING, tenant_id)

        stats = pipeline.get_stats(tenant_id, "24h")

        assert stats.processed == 3
        assert stats.completed == 3
        assert stats.auto_replies == 2
        assert stats.escalations == 1
        assert stats.escalation_records == 1
        assert stats.by_category == {"urgent": 1, "inquiry": 1, "general": 1}
        assert stats.by_action == {"notify_immediately": 1, "auto_reply": 1, "queue_for_review": 1}
        assert stats.queue.total == 3

        clock.advance(days=2)
        assert pipeline.get_stats(tenant_id, "24h").processed == 0
        assert pipeline.get_stats(tenant_id, "7d").processed == 3

    def test_invalid_timeframe(self, pipeline, tenant_id) -> None:
        with pytest.raises(ValidationError):
            pipeline.get_stats(tenant_id, "1y")
