"""Unit tests for the email classifier."""

import json

import pytest

from email_triage.classification import EmailClassifier, RuleBasedClassificationStrategy
from email_triage.classification.strategies import LLMClassificationStrategy, extract_json_object
from email_triage.exceptions import OllamaConnectionError
from email_triage.models import ClassificationMethod, Email, EmailCategory, Sentiment, UrgencyLevel


def _llm_json(**overrides) -> str:
    payload = {
        "category": "appointment",
        "urgency": "normal",
        "sentiment": "positive",
        "confidence": 91,
        "keywords": ["Book", "visit", "book"],
        "reasoning": "Customer wants to schedule a visit",
    }
    payload.update(overrides)
    return json.dumps(payload)


class TestRuleBasedScoring:
    """Test suite for the deterministic keyword scorer."""

    def test_urgent_email(self) -> None:
        """Test that two or more urgent keywords make the email critical."""
        result = RuleBasedClassificationStrategy().score("urgent: pipe burst water everywhere, need help now")

        assert result.category == EmailCategory.URGENT
        assert result.urgency == UrgencyLevel.CRITICAL
        assert result.method == ClassificationMethod.RULES
        assert result.confidence == 60
        assert result.requires_response is True

    def test_two_urgent_keywords_force_critical_in_other_categories(self) -> None:
        text = "complaint: terrible, awful, worst service, unacceptable. it's urgent and still broken"
        result = RuleBasedClassificationStrategy().score(text)

        assert result.category == EmailCategory.COMPLAINT
        assert result.urgency == UrgencyLevel.CRITICAL

    def test_single_urgent_keyword_is_high(self) -> None:
        result = RuleBasedClassificationStrategy().score("question about pricing, fairly urgent")

        assert result.category == EmailCategory.INQUIRY
        assert result.urgency == UrgencyLevel.HIGH

    def test_complaint_is_high_urgency_and_negative(self) -> None:
        text = "very disappointed. the technician was rude and the work is terrible. i want a refund."
        result = RuleBasedClassificationStrategy().score(text)

        assert result.category == EmailCategory.COMPLAINT
        assert result.urgency == UrgencyLevel.HIGH
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.confidence == 80

    def test_tie_goes_to_earliest_category(self) -> None:
        """Test that equal scores resolve to the category declared first."""
        result = RuleBasedClassificationStrategy().score("can we book a quote")

        assert result.category == EmailCategory.APPOINTMENT

    def test_no_match_is_general_with_zero_confidence(self) -> None:
        result = RuleBasedClassificationStrategy().score("hello there")

        assert result.category == EmailCategory.GENERAL
        assert result.confidence == 0
        assert result.urgency == UrgencyLevel.NORMAL

    def test_confidence_is_capped(self) -> None:
        text = "question pricing price quote estimate rate cost how much"
        assert RuleBasedClassificationStrategy().score(text).confidence == 100

    def test_keywords_ranked_by_frequency(self) -> None:
        result = RuleBasedClassificationStrategy().score("visit? visit! schedule a visit")

        assert result.keywords[0] == "visit"
        assert "schedule" in result.keywords

    def test_whole_word_matching(self) -> None:
        """Test that keywords do not match inside other words."""
        result = RuleBasedClassificationStrategy().score("the rater was accurate")

        assert result.category == EmailCategory.GENERAL

    def test_positive_sentiment(self) -> None:
        result = RuleBasedClassificationStrategy().score("thanks, the visit was great")

        assert result.sentiment == Sentiment.POSITIVE


class TestLLMResponseParsing:
    """Test suite for the strict-JSON contract."""

    def test_parse_valid_response(self) -> None:
        result = LLMClassificationStrategy.parse_response(_llm_json())

        assert result.category == EmailCategory.APPOINTMENT
        assert result.method == ClassificationMethod.AI
        assert result.confidence == 91
        assert result.keywords == ["book", "visit"]

    def test_fractional_confidence_is_scaled(self) -> None:
        assert LLMClassificationStrategy.parse_response(_llm_json(confidence=0.8)).confidence == 80

    def test_unknown_category_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            LLMClassificationStrategy.parse_response(_llm_json(category="spam"))

    def test_extract_json_from_fenced_reply(self) -> None:
        raw = "Sure!\n```json\n" + _llm_json() + "\n```"
        assert extract_json_object(raw)["category"] == "appointment"

    def test_extract_json_rejects_prose(self) -> None:
        with pytest.raises(ValueError):
            extract_json_object("I think this is an appointment.")


class TestEmailClassifier:
    """Test suite for the classifier chain."""

    @pytest.mark.asyncio
    async def test_blank_email_gets_default(self, blank_email, llm_settings, fake_llm_factory) -> None:
        """Test that empty subject and body give general with confidence 25."""
        llm = fake_llm_factory(reply=_llm_json())
        result = await EmailClassifier(llm, llm_settings).classify(blank_email)

        assert result.category == EmailCategory.GENERAL
        assert result.confidence == 25
        assert result.method == ClassificationMethod.DEFAULT
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_llm_result_used_when_valid(self, inquiry_email, llm_settings, fake_llm_factory) -> None:
        llm = fake_llm_factory(reply=_llm_json(category="inquiry"))
        result = await EmailClassifier(llm, llm_settings).classify(inquiry_email)

        assert result.method == ClassificationMethod.AI
        assert result.category == EmailCategory.INQUIRY
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_rules(self, urgent_email, llm_settings, fake_llm_factory) -> None:
        llm = fake_llm_factory(error=OllamaConnectionError("down"))
        result = await EmailClassifier(llm, llm_settings).classify(urgent_email)

        assert result.method == ClassificationMethod.RULES
        assert result.category == EmailCategory.URGENT

    @pytest.mark.asyncio
    async def test_malformed_llm_reply_falls_back_to_rules(
        self, inquiry_email, llm_settings, fake_llm_factory
    ) -> None:
        llm = fake_llm_factory(reply="not json at all")
        result = await EmailClassifier(llm, llm_settings).classify(inquiry_email)

        assert result.method == ClassificationMethod.RULES
        assert result.category == EmailCategory.INQUIRY

    @pytest.mark.asyncio
    async def test_slow_llm_is_bounded_by_timeout(self, inquiry_email, llm_settings, fake_llm_factory) -> None:
        settings = llm_settings.model_copy(update={"classification_timeout": 0.05})
        llm = fake_llm_factory(reply=_llm_json(), delay=1.0)
        result = await EmailClassifier(llm, settings).classify(inquiry_email)

        assert result.method == ClassificationMethod.RULES

    @pytest.mark.asyncio
    async def test_disabled_llm_is_not_called(self, inquiry_email, mock_settings, fake_llm_factory) -> None:
        llm = fake_llm_factory(reply=_llm_json())
        result = await EmailClassifier(llm, mock_settings).classify(inquiry_email)

        assert result.method == ClassificationMethod.RULES
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_body_is_truncated_in_prompt(self, llm_settings, fake_llm_factory) -> None:
        settings = llm_settings.model_copy(update={"classification_max_body_chars": 10})
        llm = fake_llm_factory(reply=_llm_json())
        email = Email(from_address="a@example.com", subject="Hi", body="x" * 50)

        await EmailClassifier(llm, settings).classify(email)

        user_message = llm.calls[0][-1]["content"]
        assert "x" * 10 in user_message
        assert "x" * 11 not in user_message
