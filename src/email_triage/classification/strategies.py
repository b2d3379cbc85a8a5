"""Classification strategies.

Each strategy either returns a `Classification` or raises. The classifier
tries them in order; the default strategy cannot fail.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections import Counter
from typing import Any, Optional

import structlog

from email_triage.classification.patterns import (
    COMPILED_CATEGORY_PATTERNS,
    COMPILED_NEGATIVE,
    COMPILED_POSITIVE,
    KeywordPattern,
)
from email_triage.classification.prompt import build_classification_messages
from email_triage.config import Settings
from email_triage.exceptions import ExternalServiceError, ServiceTimeoutError
from email_triage.models.classification import (
    Classification,
    ClassificationMethod,
    EmailCategory,
    Sentiment,
    UrgencyLevel,
)
from email_triage.models.email import Email
from email_triage.ollama.client import LLMClient

logger = structlog.get_logger()

MAX_KEYWORDS = 10

RESPONSE_CATEGORIES = frozenset(
    {EmailCategory.COMPLAINT, EmailCategory.INQUIRY, EmailCategory.APPOINTMENT}
)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.S)


def requires_response(category: EmailCategory, urgency: UrgencyLevel) -> bool:
    return urgency in (UrgencyLevel.HIGH, UrgencyLevel.CRITICAL) or category in RESPONSE_CATEGORIES


def extract_json_object(raw: str) -> dict[str, Any]:
    """Extract the first JSON object from a raw model response."""

    raw = (raw or "").strip()
    if not raw:
        raise ValueError("empty model response")

    # Fast path: direct JSON.
    try:
        obj = json.loads(raw)
        if isinstance(obj, dict):
            return obj
    except json.JSONDecodeError:
        pass

    # Tolerant path: find {...} region.
    m = _JSON_OBJECT_RE.search(raw)
    if not m:
        raise ValueError("model response did not contain a JSON object")

    obj = json.loads(m.group(0))
    if not isinstance(obj, dict):
        raise ValueError("extracted JSON was not an object")
    return obj


class ClassificationStrategy:
    """Interface for one link in the classification chain."""

    name: str = "strategy"

    async def classify(self, email: Email) -> Classification:
        raise NotImplementedError


class LLMClassificationStrategy(ClassificationStrategy):
    """Ask the language model for a strict-JSON classification."""

    name = "llm"

    def __init__(self, llm: LLMClient | None, settings: Optional[Settings] = None) -> None:
        from email_triage.config import get_settings

        self.llm = llm
        self.settings = settings or get_settings()

    async def classify(self, email: Email) -> Classification:
        if self.llm is None or not self.settings.llm_enabled:
            raise ExternalServiceError("classification service unavailable")

        messages = build_classification_messages(
            subject=email.subject,
            sender=email.from_address,
            body=email.body,
            max_body_chars=self.settings.classification_max_body_chars,
        )
        timeout = self.settings.classification_timeout
        try:
            raw = await asyncio.wait_for(self.llm.chat(messages, timeout=timeout), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(f"classification exceeded {timeout}s") from e

        return self.parse_response(raw)

    @staticmethod
    def parse_response(raw: str) -> Classification:
        """Validate a model response against the classification contract.

        Raises:
            ValueError: If the response is not JSON or a value is outside its enum.
        """
        obj = extract_json_object(raw)

        category = EmailCategory(str(obj.get("category", "")).strip().lower())
        urgency = UrgencyLevel(str(obj.get("urgency") or "normal").strip().lower())
        sentiment = Sentiment(str(obj.get("sentiment") or "neutral").strip().lower())

        confidence_raw = obj.get("confidence", 70)
        try:
            confidence = float(confidence_raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"confidence is not numeric: {confidence_raw!r}") from e
        # Some models answer on a 0..1 scale.
        if 0.0 < confidence <= 1.0:
            confidence *= 100
        confidence = int(round(min(max(confidence, 0.0), 100.0)))

        keywords: list[str] = []
        for k in obj.get("keywords") or []:
            kw = str(k).strip().lower()
            if kw and kw not in keywords:
                keywords.append(kw)

        return Classification(
            category=category,
            urgency=urgency,
            confidence=confidence,
            sentiment=sentiment,
            keywords=keywords[:MAX_KEYWORDS],
            method=ClassificationMethod.AI,
            reasoning=str(obj.get("reasoning") or "").strip(),
            requires_response=requires_response(category, urgency),
        )


class RuleBasedClassificationStrategy(ClassificationStrategy):
    """Deterministic keyword scorer.

    The confidence it reports is `min(score * 20, 100)`, a coarse count of
    matched patterns and not a calibrated probability.
    """

    name = "rules"

    async def classify(self, email: Email) -> Classification:
        return self.score(email.text_for_analysis())

    @staticmethod
    def _matches(text: str, patterns: tuple[KeywordPattern, ...]) -> list[tuple[str, int, int]]:
        """(keyword, occurrences, first position) for every pattern found in text."""

        found: list[tuple[str, int, int]] = []
        for p in patterns:
            hits = list(p.regex.finditer(text))
            if hits:
                found.append((p.keyword, len(hits), hits[0].start()))
        return found

    def score(self, text: str) -> Classification:
        matches = {
            category: self._matches(text, patterns)
            for category, patterns in COMPILED_CATEGORY_PATTERNS.items()
        }
        scores = {category: len(found) for category, found in matches.items()}

        # max() returns the first maximal item, so ties go to the earliest declared category.
        best = max(scores, key=lambda c: scores[c])
        max_score = scores[best]
        category = best if max_score > 0 else EmailCategory.GENERAL

        urgent_hits = scores[EmailCategory.URGENT]
        if urgent_hits >= 2 or category == EmailCategory.URGENT:
            urgency = UrgencyLevel.CRITICAL
        elif urgent_hits == 1 or category == EmailCategory.COMPLAINT:
            urgency = UrgencyLevel.HIGH
        else:
            urgency = UrgencyLevel.NORMAL

        positive = len(self._matches(text, COMPILED_POSITIVE))
        negative = len(self._matches(text, COMPILED_NEGATIVE))
        if positive > negative:
            sentiment = Sentiment.POSITIVE
        elif negative > positive:
            sentiment = Sentiment.NEGATIVE
        else:
            sentiment = Sentiment.NEUTRAL

        ranked: Counter[str] = Counter()
        first_pos: dict[str, int] = {}
        for found in matches.values():
            for keyword, count, pos in found:
                ranked[keyword] += count
                first_pos[keyword] = min(pos, first_pos.get(keyword, pos))
        keywords = sorted(ranked, key=lambda k: (-ranked[k], first_pos[k]))[:MAX_KEYWORDS]

        if max_score > 0:
            reasoning = f"Matched {max_score} {category.value} pattern(s)"
        else:
            reasoning = "No category patterns matched"

        return Classification(
            category=category,
            urgency=urgency,
            confidence=min(max_score * 20, 100),
            sentiment=sentiment,
            keywords=keywords,
            method=ClassificationMethod.RULES,
            reasoning=reasoning,
            requires_response=requires_response(category, urgency),
        )


class DefaultClassificationStrategy(ClassificationStrategy):
    name = "default"

    async def classify(self, email: Email) -> Classification:
        return Classification.default()
