"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from email_triage.models.email import Email

# Wednesday 2024-03-13 15:00 UTC, 11:00 in New York.
WEDNESDAY_AFTERNOON = datetime(2024, 3, 13, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = WEDNESDAY_AFTERNOON) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeLLM:
    """In-memory stand-in for the Ollama chat client."""

    def __init__(self, reply: str = "", error: Exception | None = None, delay: float = 0.0) -> None:
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[list[dict[str, str]]] = []

    async def chat(self, messages: list[dict[str, str]], timeout: float | None = None) -> str:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def mock_settings():
    """Provide settings isolated from the environment and any .env file."""
    from email_triage.config import Settings

    return Settings(
        _env_file=None,
        ollama_host="http://test:11434",
        ollama_model="test-model",
        llm_enabled=False,
        database_url="sqlite://",
        log_level="DEBUG",
        debug=True,
        cache_enabled=False,
        classification_timeout=0.5,
        generation_timeout=0.5,
        worker_poll_interval=0.01,
    )


@pytest.fixture
def llm_settings(mock_settings):
    """Settings with the language model enabled."""
    return mock_settings.model_copy(update={"llm_enabled": True})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_llm_factory():
    """Build FakeLLM instances: fake_llm_factory(reply=..., error=..., delay=...)."""
    return FakeLLM


@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite database with the pipeline schema."""
    from email_triage.db import create_db_engine, ensure_schema

    engine = create_db_engine(f"sqlite:///{tmp_path / 'triage.sqlite3'}")
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def tenant_id() -> str:
    return "tenant-acme"


@pytest.fixture
def urgent_email() -> Email:
    return Email(
        id="email-urgent",
        from_address="Pat Jones <pat@example.com>",
        to="service@acme-plumbing.test",
        subject="URGENT: pipe burst",
        body="water everywhere, need help now",
    )


@pytest.fixture
def inquiry_email() -> Email:
    return Email(
        id="email-inquiry",
        from_address="Sam Lee <sam@example.com>",
        to="service@acme-plumbing.test",
        subject="Question about pricing",
        body="what is your hourly rate?",
    )


@pytest.fixture
def complaint_email() -> Email:
    return Email(
        id="email-complaint",
        from_address="alex@example.com",
        to="service@acme-plumbing.test",
        subject="Very disappointed with the repair",
        body="The technician was rude and the work is terrible. I want a refund.",
    )


@pytest.fixture
def blank_email() -> Email:
    return Email(id="email-blank", from_address="nobody@example.com", subject="", body="")


@pytest.fixture
def email_payload() -> dict[str, Any]:
    """Raw email as a caller would send it."""
    return {
        "id": "email-raw",
        "from": "Jamie <jamie@example.com>",
        "to": "service@acme-plumbing.test",
        "subject": "Can I book a visit next week?",
        "body": "Do you have availability on Tuesday?",
        "provider": "gmail",
    }
