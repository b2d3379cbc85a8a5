"""Style-aware reply generation.

A strategy chain like the classifier's: styled generation through the
language model when the tenant has a style profile, then a fixed template
picked by keyword sniffing. The template strategy cannot fail, so callers
always receive a usable reply.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from email_triage.config import Settings
from email_triage.exceptions import ExternalServiceError, PersistenceError, ServiceTimeoutError
from email_triage.models.email import Email
from email_triage.models.responses import GeneratedResponse, StyleProfile
from email_triage.models.tenant import BusinessContext
from email_triage.ollama.client import LLMClient
from email_triage.repository.tenant_repository import StyleProfileRepository
from email_triage.responses.fallback_templates import render_fallback, sniff_template_key
from email_triage.responses.prompt import build_response_messages

logger = structlog.get_logger()


@dataclass(frozen=True)
class GenerationRequest:
    tenant_id: str
    email: Email
    category: str | None
    business: BusinessContext
    profile: StyleProfile | None = None
    variation: int | None = None


class GenerationStrategy:
    """Interface for one link in the generation chain."""

    name: str = "strategy"

    async def generate(self, request: GenerationRequest) -> GeneratedResponse:
        raise NotImplementedError


class StyledGenerationStrategy(GenerationStrategy):
    name = "styled"

    def __init__(self, llm: LLMClient | None, settings: Optional[Settings] = None) -> None:
        from email_triage.config import get_settings

        self.llm = llm
        self.settings = settings or get_settings()

    async def generate(self, request: GenerationRequest) -> GeneratedResponse:
        if request.profile is None:
            raise ValueError("no style profile for tenant")
        if self.llm is None or not self.settings.llm_enabled:
            raise ExternalServiceError("generation service unavailable")

        messages = build_response_messages(
            profile=request.profile,
            email=request.email,
            business=request.business,
            category=request.category,
            variation=request.variation,
            max_body_chars=self.settings.classification_max_body_chars,
        )
        timeout = self.settings.generation_timeout
        try:
            raw = await asyncio.wait_for(self.llm.chat(messages, timeout=timeout), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(f"generation exceeded {timeout}s") from e

        text = (raw or "").strip()
        if not text:
            raise ValueError("generation service returned an empty reply")

        confidence = request.profile.confidence
        if confidence is None:
            confidence = self.settings.default_style_confidence

        return GeneratedResponse(
            text=text,
            style_applied=True,
            confidence=confidence,
            fallback_used=False,
            variation=request.variation,
        )


class TemplateFallbackStrategy(GenerationStrategy):
    name = "template"

    def __init__(self, settings: Optional[Settings] = None) -> None:
        from email_triage.config import get_settings

        self.settings = settings or get_settings()

    async def generate(self, request: GenerationRequest) -> GeneratedResponse:
        key = sniff_template_key(request.email.text_for_analysis(), request.category)
        return GeneratedResponse(
            text=render_fallback(key, request.business),
            style_applied=False,
            confidence=self.settings.fallback_confidence,
            template_id=f"fallback:{key}",
            fallback_used=True,
            variation=request.variation,
        )


class ResponseGenerator:
    """Generate replies in the tenant's voice, falling back to fixed templates.

    Args:
        llm: Language model client. When None styled generation is skipped.
        profiles: Style profile store. When None every tenant counts as unprofiled.
        settings: Application settings.
        strategies: Override the strategy chain (mainly for tests).
    """

    def __init__(
        self,
        llm: LLMClient | None = None,
        profiles: StyleProfileRepository | None = None,
        settings: Optional[Settings] = None,
        strategies: Sequence[GenerationStrategy] | None = None,
    ) -> None:
        from email_triage.config import get_settings

        self.settings = settings or get_settings()
        self.profiles = profiles
        self._fallback = TemplateFallbackStrategy(self.settings)
        if strategies is None:
            strategies = [StyledGenerationStrategy(llm, self.settings)]
        self.strategies: list[GenerationStrategy] = list(strategies)

    def _load_profile(self, tenant_id: str) -> StyleProfile | None:
        if self.profiles is None:
            return None
        try:
            return self.profiles.get_profile(tenant_id)
        except PersistenceError as e:
            logger.warning("style_profile_unavailable", tenant_id=tenant_id, error=str(e))
            return None

    async def generate_response(
        self,
        tenant_id: str,
        email: Email,
        category: str | None = None,
        business_context: BusinessContext | None = None,
        variation: int | None = None,
    ) -> GeneratedResponse:
        """Generate one reply. Never raises."""

        request = GenerationRequest(
            tenant_id=tenant_id,
            email=email,
            category=category,
            business=business_context or BusinessContext(),
            profile=self._load_profile(tenant_id),
            variation=variation,
        )

        for strategy in self.strategies:
            try:
                response = await strategy.generate(request)
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "generation_strategy_failed",
                    email_id=email.id,
                    tenant_id=tenant_id,
                    strategy=strategy.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            logger.info(
                "response_generated",
                email_id=email.id,
                tenant_id=tenant_id,
                strategy=strategy.name,
                confidence=response.confidence,
            )
            return response

        response = await self._fallback.generate(request)
        logger.warning(
            "generation_fell_back_to_template",
            email_id=email.id,
            tenant_id=tenant_id,
            template_id=response.template_id,
        )
        return response

    async def generate_multiple_options(
        self,
        tenant_id: str,
        email: Email,
        category: str | None = None,
        business_context: BusinessContext | None = None,
        n: int = 3,
    ) -> list[GeneratedResponse]:
        """Run `n` independent generations. Duplicate texts are possible."""

        options: list[GeneratedResponse] = []
        for i in range(max(0, n)):
            options.append(
                await self.generate_response(tenant_id, email, category, business_context, variation=i + 1)
            )
        return options
