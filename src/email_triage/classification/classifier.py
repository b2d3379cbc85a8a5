"""Email classifier: an ordered chain of strategies that always produces a result."""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from email_triage.classification.strategies import (
    ClassificationStrategy,
    DefaultClassificationStrategy,
    LLMClassificationStrategy,
    RuleBasedClassificationStrategy,
)
from email_triage.config import Settings
from email_triage.models.classification import Classification
from email_triage.models.email import Email
from email_triage.ollama.client import LLMClient

logger = structlog.get_logger()


class EmailClassifier:
    """Classify emails by trying LLM, then keyword rules, then the default.

    Args:
        llm: Language model client. When None the LLM strategy is skipped.
        settings: Application settings.
        strategies: Override the strategy chain (mainly for tests).
    """

    def __init__(
        self,
        llm: LLMClient | None = None,
        settings: Optional[Settings] = None,
        strategies: Sequence[ClassificationStrategy] | None = None,
    ) -> None:
        from email_triage.config import get_settings

        self.settings = settings or get_settings()
        self._default = DefaultClassificationStrategy()
        if strategies is None:
            strategies = [
                LLMClassificationStrategy(llm, self.settings),
                RuleBasedClassificationStrategy(),
            ]
        self.strategies: list[ClassificationStrategy] = list(strategies)

    async def classify(self, email: Email) -> Classification:
        """Classify one email. Never raises."""

        if email.is_blank():
            logger.info("classification_blank_email", email_id=email.id)
            return await self._default.classify(email)

        for strategy in self.strategies:
            try:
                result = await strategy.classify(email)
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "classification_strategy_failed",
                    email_id=email.id,
                    strategy=strategy.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            logger.info(
                "email_classified",
                email_id=email.id,
                strategy=strategy.name,
                category=result.category.value,
                urgency=result.urgency.value,
                confidence=result.confidence,
            )
            return result

        logger.warning("classification_fell_back_to_default", email_id=email.id)
        return await self._default.classify(email)
