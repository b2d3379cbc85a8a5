"""Unit tests for Ollama client."""

import io
import json
import urllib.error
import urllib.request

import pytest

from email_triage.exceptions import (
    OllamaConnectionError,
    OllamaInferenceError,
    ServiceTimeoutError,
)
from email_triage.ollama.client import OllamaClient


class _FakeResponse(io.BytesIO):
    status = 200

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _respond_with(payload):
    captured = {}

    def fake_urlopen(req, timeout=None):
        captured["url"] = req.full_url
        captured["body"] = json.loads(req.data.decode("utf-8")) if req.data else None
        captured["timeout"] = timeout
        raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        return _FakeResponse(raw)

    return fake_urlopen, captured


class TestOllamaClient:
    """Test suite for OllamaClient class."""

    def test_ollama_client_initialization(self, mock_settings) -> None:
        """Test that Ollama client is properly initialized."""
        client = OllamaClient(mock_settings)

        assert client.settings is mock_settings
        assert client.host == "http://test:11434"

    @pytest.mark.asyncio
    async def test_chat_returns_message_content(self, mock_settings, monkeypatch) -> None:
        """Test that chat posts to /api/chat and returns the assistant content."""
        fake, captured = _respond_with({"message": {"role": "assistant", "content": "  Hello there  "}})
        monkeypatch.setattr(urllib.request, "urlopen", fake)
        client = OllamaClient(mock_settings)

        reply = await client.chat([{"role": "user", "content": "Hi"}], timeout=2)

        assert reply == "Hello there"
        assert captured["url"] == "http://test:11434/api/chat"
        assert captured["body"]["model"] == "test-model"
        assert captured["body"]["stream"] is False
        assert captured["timeout"] == 2

    @pytest.mark.asyncio
    async def test_generate_returns_response_text(self, mock_settings, monkeypatch) -> None:
        """Test that generate posts to /api/generate."""
        fake, captured = _respond_with({"response": "generated"})
        monkeypatch.setattr(urllib.request, "urlopen", fake)
        client = OllamaClient(mock_settings)

        assert await client.generate("Test prompt") == "generated"
        assert captured["url"].endswith("/api/generate")
        assert captured["body"]["prompt"] == "Test prompt"

    @pytest.mark.asyncio
    async def test_empty_chat_message_is_an_inference_error(self, mock_settings, monkeypatch) -> None:
        """Test that an empty assistant message raises OllamaInferenceError."""
        fake, _ = _respond_with({"message": {"role": "assistant", "content": ""}})
        monkeypatch.setattr(urllib.request, "urlopen", fake)

        with pytest.raises(OllamaInferenceError):
            await OllamaClient(mock_settings).chat([{"role": "user", "content": "Hi"}])

    @pytest.mark.asyncio
    async def test_invalid_json_is_an_inference_error(self, mock_settings, monkeypatch) -> None:
        """Test that a non-JSON body raises OllamaInferenceError."""
        fake, _ = _respond_with(b"not json")
        monkeypatch.setattr(urllib.request, "urlopen", fake)

        with pytest.raises(OllamaInferenceError):
            await OllamaClient(mock_settings).generate("prompt")

    @pytest.mark.asyncio
    async def test_error_field_is_an_inference_error(self, mock_settings, monkeypatch) -> None:
        """Test that an error payload raises OllamaInferenceError."""
        fake, _ = _respond_with({"error": "model not found"})
        monkeypatch.setattr(urllib.request, "urlopen", fake)

        with pytest.raises(OllamaInferenceError, match="model not found"):
            await OllamaClient(mock_settings).generate("prompt")

    @pytest.mark.asyncio
    async def test_unreachable_server_is_a_connection_error(self, mock_settings, monkeypatch) -> None:
        """Test that a refused connection raises OllamaConnectionError."""

        def refuse(req, timeout=None):
            raise urllib.error.URLError(ConnectionRefusedError("refused"))

        monkeypatch.setattr(urllib.request, "urlopen", refuse)

        with pytest.raises(OllamaConnectionError):
            await OllamaClient(mock_settings).chat([{"role": "user", "content": "Hi"}])

    @pytest.mark.asyncio
    async def test_socket_timeout_is_a_timeout_error(self, mock_settings, monkeypatch) -> None:
        """Test that a socket timeout raises ServiceTimeoutError."""

        def slow(req, timeout=None):
            raise TimeoutError("timed out")

        monkeypatch.setattr(urllib.request, "urlopen", slow)

        with pytest.raises(ServiceTimeoutError):
            await OllamaClient(mock_settings).chat([{"role": "user", "content": "Hi"}])

    @pytest.mark.asyncio
    async def test_is_available_false_when_unreachable(self, mock_settings, monkeypatch) -> None:
        """Test that is_available reports False instead of raising."""

        def refuse(req, timeout=None):
            raise urllib.error.URLError("refused")

        monkeypatch.setattr(urllib.request, "urlopen", refuse)

        assert await OllamaClient(mock_settings).is_available() is False
