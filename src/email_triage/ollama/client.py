"""Ollama client implementation.

This module provides a client for interacting with Ollama LLM. The HTTP
calls are blocking `urllib` requests executed in a worker thread so they
never stall the event loop, and every call is bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import json
import socket
import urllib.error
import urllib.request
from typing import Any, Optional, Protocol

import structlog

from email_triage.config import Settings
from email_triage.exceptions import (
    OllamaConnectionError,
    OllamaInferenceError,
    ServiceTimeoutError,
)

logger = structlog.get_logger()


class LLMClient(Protocol):
    """What the classifier and reply generator need from a language model."""

    async def chat(self, messages: list[dict[str, str]], timeout: float | None = None) -> str:
        ...


class OllamaClient:
    """Ollama LLM client for AI inference.

    This client handles communication with the Ollama API
    for language model inference tasks.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize Ollama client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from email_triage.config import get_settings

        self.settings = settings or get_settings()
        self.host = self.settings.ollama_host.rstrip("/")
        logger.info(
            "ollama_client_initialized",
            host=self.host,
            model=self.settings.ollama_model,
        )

    def _post(self, path: str, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
        req = urllib.request.Request(
            url=f"{self.host}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raise OllamaInferenceError(f"Ollama returned HTTP {e.code} for {path}") from e
        except (socket.timeout, TimeoutError) as e:
            raise ServiceTimeoutError(f"Ollama call to {path} timed out after {timeout}s") from e
        except (urllib.error.URLError, OSError) as e:
            if isinstance(getattr(e, "reason", None), TimeoutError):
                raise ServiceTimeoutError(f"Ollama call to {path} timed out after {timeout}s") from e
            raise OllamaConnectionError(f"Unable to reach Ollama at {self.host}: {e}") from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise OllamaInferenceError(f"Ollama returned invalid JSON for {path}") from e
        if not isinstance(data, dict):
            raise OllamaInferenceError(f"Ollama returned unexpected payload for {path}")
        if data.get("error"):
            raise OllamaInferenceError(str(data["error"]))
        return data

    async def _call(self, path: str, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._post, path, payload, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(f"Ollama call to {path} timed out after {timeout}s") from e

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        timeout: float | None = None,
    ) -> str:
        """Generate text using Ollama.

        Args:
            prompt: The prompt to send to the model.
            model: Model name to use. If None, uses default from settings.
            timeout: Upper bound in seconds. Defaults to the generation timeout.

        Returns:
            The generated text, stripped.

        Raises:
            OllamaConnectionError: If unable to connect to Ollama.
            OllamaInferenceError: If inference fails.
            ServiceTimeoutError: If the call exceeds the timeout.
        """
        model = model or self.settings.ollama_model
        timeout = timeout or self.settings.generation_timeout
        logger.debug("generating_text", model=model, prompt_length=len(prompt))

        data = await self._call(
            "/api/generate",
            {"model": model, "prompt": prompt, "stream": False},
            timeout,
        )
        return str(data.get("response") or "").strip()

    async def chat(
        self,
        messages: list[dict[str, str]],
        timeout: float | None = None,
        model: Optional[str] = None,
    ) -> str:
        """Have a chat conversation with Ollama.

        Args:
            messages: List of message dictionaries with 'role' and 'content'.
            timeout: Upper bound in seconds. Defaults to the generation timeout.
            model: Model name to use. If None, uses default from settings.

        Returns:
            Content of the assistant message.

        Raises:
            OllamaConnectionError: If unable to connect to Ollama.
            OllamaInferenceError: If inference fails or the reply is empty.
            ServiceTimeoutError: If the call exceeds the timeout.
        """
        model = model or self.settings.ollama_model
        timeout = timeout or self.settings.generation_timeout
        logger.debug("chat_started", model=model, message_count=len(messages))

        data = await self._call(
            "/api/chat",
            {"model": model, "messages": messages, "stream": False},
            timeout,
        )
        message = data.get("message") or {}
        content = str(message.get("content") or "").strip() if isinstance(message, dict) else ""
        if not content:
            raise OllamaInferenceError("Ollama returned an empty chat message")
        return content

    async def is_available(self, timeout: float = 5.0) -> bool:
        """Return True when the Ollama server answers its tags endpoint."""

        def _reachable() -> bool:
            req = urllib.request.Request(url=f"{self.host}/api/tags", method="GET")
            try:
                with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
                    return 200 <= resp.status < 300
            except (urllib.error.URLError, OSError):
                return False

        available = await asyncio.to_thread(_reachable)
        logger.debug("ollama_availability_checked", host=self.host, available=available)
        return available
