"""End-to-end pipeline scenarios against a real SQLite database.

These run every stage together: queue, classification, rules, routing,
reply generation, templates and escalation. The language model is
scripted so the scenarios stay deterministic.
"""

import json

import pytest

from email_triage.escalation import LoggingNotificationChannel
from email_triage.exceptions import OllamaConnectionError
from email_triage.models import (
    ClassificationMethod,
    Email,
    EmailCategory,
    QueueStatus,
    RoutingAction,
    StyleProfile,
    UrgencyLevel,
)
from email_triage.pipeline import EmailPipeline, QueueWorker
from email_triage.repository import ResponseRepository, StyleProfileRepository, TemplateRepository

BOOKING_JSON = json.dumps(
    {
        "category": "appointment",
        "urgency": "normal",
        "sentiment": "positive",
        "confidence": 0.91,
        "keywords": ["Book", "tuesday", "book"],
        "reasoning": "Customer wants to schedule a visit.",
    }
)


class _ScriptedLLM:
    """Answers classification prompts with JSON and everything else with a styled reply."""

    def __init__(self, classification: str, reply: str) -> None:
        self.classification = classification
        self.reply = reply
        self.prompts: list[str] = []

    async def chat(self, messages, timeout=None):
        system = messages[0]["content"]
        self.prompts.append(system)
        if system.startswith("You classify emails"):
            return self.classification
        return self.reply


@pytest.fixture
def notifier() -> LoggingNotificationChannel:
    return LoggingNotificationChannel()


@pytest.mark.integration
class TestPipelineScenarios:
    """Full runs of the pipeline for the common kinds of inbound email."""

    @pytest.mark.asyncio
    async def test_emergency_is_escalated_and_alerted(
        self, db_engine, mock_settings, notifier, clock, tenant_id, urgent_email
    ) -> None:
        pipeline = EmailPipeline.from_engine(db_engine, settings=mock_settings, notifier=notifier, clock=clock)

        result = await pipeline.process_email(urgent_email, tenant_id)

        assert result.pipeline == "complete"
        assert result.classification.method == ClassificationMethod.RULES
        assert result.classification.urgency == UrgencyLevel.CRITICAL
        assert result.routing.action == RoutingAction.NOTIFY_IMMEDIATELY
        assert result.routing.priority >= 90
        assert result.escalation.escalated is True
        assert notifier.sent[0]["type"] == "immediate_alert"
        assert notifier.sent[0]["tenant_id"] == tenant_id

        records = pipeline.escalation.repository.list_records(tenant_id)
        assert [r.email_ref for r in records] == [urgent_email.id]

    @pytest.mark.asyncio
    async def test_inquiry_gets_a_reply_while_the_model_is_down(
        self, db_engine, llm_settings, clock, tenant_id, inquiry_email, fake_llm_factory
    ) -> None:
        StyleProfileRepository(db_engine).save_profile(tenant_id, StyleProfile(tone="friendly"))
        llm = fake_llm_factory(error=OllamaConnectionError("connection refused"))
        pipeline = EmailPipeline.from_engine(db_engine, settings=llm_settings, llm=llm, clock=clock)

        result = await pipeline.process_email(inquiry_email, tenant_id)

        assert result.pipeline == "complete"
        assert result.classification.method == ClassificationMethod.RULES
        assert result.routing.action == RoutingAction.AUTO_REPLY
        assert result.generated_response.fallback_used is True
        assert result.final_response.strip()
        # One failed classification call, one failed generation call.
        assert len(llm.calls) == 2

        stored = ResponseRepository(db_engine).list_responses(tenant_id)
        assert stored[0]["response_text"] == result.final_response

    @pytest.mark.asyncio
    async def test_model_classifies_and_writes_in_the_tenant_style(
        self, db_engine, llm_settings, clock, tenant_id, email_payload
    ) -> None:
        StyleProfileRepository(db_engine).save_profile(
            tenant_id,
            StyleProfile(tone="friendly", greeting="Hey", closing="Talk soon", confidence=80),
        )
        TemplateRepository(db_engine).create_template(
            tenant_id,
            name="Bookings",
            category="appointment",
            body_template="Hi {customer_name},\n\n{response}\n\n{business_name}",
        )
        llm = _ScriptedLLM(BOOKING_JSON, "Hey! Tuesday at 10 works. Talk soon")
        pipeline = EmailPipeline.from_engine(db_engine, settings=llm_settings, llm=llm, clock=clock)

        result = await pipeline.process_email(Email.model_validate(email_payload), tenant_id)

        assert result.classification.method == ClassificationMethod.AI
        assert result.classification.category == EmailCategory.APPOINTMENT
        assert result.classification.confidence == 91
        assert result.classification.keywords == ["book", "tuesday"]
        assert result.routing.action == RoutingAction.AUTO_REPLY
        assert result.generated_response.style_applied is True
        assert result.generated_response.confidence == 80
        assert result.final_response == "Hi Jamie,\n\nHey! Tuesday at 10 works. Talk soon\n\nOur Business"
        assert "Tone: friendly." in llm.prompts[1]

    @pytest.mark.asyncio
    async def test_immediate_response_follow_up_is_worked_once(
        self, db_engine, mock_settings, notifier, clock, tenant_id, urgent_email
    ) -> None:
        pipeline = EmailPipeline.from_engine(db_engine, settings=mock_settings, notifier=notifier, clock=clock)
        pipeline.rules_engine.create_rule(tenant_id, "high_urgency", "immediate_response", priority=9)

        first = await pipeline.process_email(urgent_email, tenant_id)

        follow_up_id = first.escalation.results[0].details["queue_id"]
        follow_up = pipeline.queue.get_queue_item(follow_up_id)
        assert follow_up.status == QueueStatus.PENDING
        assert follow_up.priority == 95
        assert follow_up.metadata["escalation"] is True

        results = await QueueWorker(pipeline, settings=mock_settings).run_once(tenant_id)

        assert [r.queue_id for r in results] == [follow_up_id]
        assert results[0].escalation is None
        assert pipeline.queue.get_queue_item(follow_up_id).status == QueueStatus.COMPLETED
        assert len(pipeline.escalation.repository.list_records(tenant_id)) == 1
        assert await QueueWorker(pipeline, settings=mock_settings).run_once(tenant_id) == []
