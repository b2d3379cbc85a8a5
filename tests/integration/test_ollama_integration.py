"""Integration tests against a live Ollama instance.

Skipped unless the configured Ollama host answers. Point
EMAIL_TRIAGE_OLLAMA_HOST / EMAIL_TRIAGE_OLLAMA_MODEL at a running server to
enable them.
"""

import asyncio

import pytest

from email_triage.classification import EmailClassifier
from email_triage.config import Settings
from email_triage.models import ClassificationMethod, Email, StyleProfile
from email_triage.ollama.client import OllamaClient
from email_triage.responses import ResponseGenerator


class _OneProfile:
    def get_profile(self, tenant_id):
        return StyleProfile(tone="friendly", formality="casual", closing="Cheers")


@pytest.fixture
def live_settings() -> Settings:
    settings = Settings(llm_enabled=True, classification_timeout=60, generation_timeout=120)
    if not asyncio.run(OllamaClient(settings).is_available(timeout=2)):
        pytest.skip(f"Ollama not reachable at {settings.ollama_host}")
    return settings


@pytest.mark.integration
class TestOllamaIntegration:
    """Integration tests for Ollama LLM."""

    @pytest.mark.asyncio
    async def test_chat_round_trip(self, live_settings) -> None:
        """Test a minimal chat request against the live server."""
        reply = await OllamaClient(live_settings).chat(
            [{"role": "user", "content": "Reply with the single word: pong"}]
        )

        assert reply

    @pytest.mark.asyncio
    async def test_email_classification_with_ollama(self, live_settings) -> None:
        """Test email classification using real Ollama inference."""
        email = Email(
            from_address="pat@example.com",
            subject="Burst pipe flooding the basement",
            body="Water is pouring in right now, please send someone immediately!",
        )

        result = await EmailClassifier(OllamaClient(live_settings), live_settings).classify(email)

        # A small local model may return malformed JSON; the rules fallback still applies.
        assert result.method in (ClassificationMethod.AI, ClassificationMethod.RULES)
        assert result.category.value in {"urgent", "complaint", "general"}

    @pytest.mark.asyncio
    async def test_styled_reply_with_ollama(self, live_settings) -> None:
        email = Email(from_address="sam@example.com", subject="Pricing", body="What is your hourly rate?")
        generator = ResponseGenerator(OllamaClient(live_settings), _OneProfile(), live_settings)

        response = await generator.generate_response("tenant-live", email, "inquiry")

        assert response.text.strip()
