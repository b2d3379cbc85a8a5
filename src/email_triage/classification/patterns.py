"""Keyword pattern sets for deterministic classification.

Category order matters: when two categories score the same, the one
declared first wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from email_triage.models.classification import EmailCategory

CATEGORY_PATTERNS: dict[EmailCategory, tuple[str, ...]] = {
    EmailCategory.URGENT: (
        "urgent",
        "emergency",
        "asap",
        "immediately",
        "right away",
        "right now",
        "critical",
        "burst",
        "leak",
        "leaking",
        "flood",
        "flooding",
        "no heat",
        "no power",
        "broken",
        "not working",
        "need help",
    ),
    EmailCategory.APPOINTMENT: (
        "appointment",
        "schedule",
        "reschedule",
        "book",
        "booking",
        "available",
        "availability",
        "visit",
        "calendar",
        "time slot",
        "come out",
    ),
    EmailCategory.COMPLAINT: (
        "complaint",
        "unhappy",
        "disappointed",
        "dissatisfied",
        "not satisfied",
        "terrible",
        "awful",
        "frustrated",
        "angry",
        "poor service",
        "refund",
        "unacceptable",
        "worst",
        "rude",
    ),
    EmailCategory.INQUIRY: (
        "question",
        "pricing",
        "price",
        "quote",
        "estimate",
        "rate",
        "cost",
        "how much",
        "what is",
        "do you offer",
        "wondering",
        "information",
    ),
    EmailCategory.FOLLOWUP: (
        "follow up",
        "following up",
        "checking in",
        "status",
        "update",
        "any news",
        "still waiting",
        "haven't heard",
        "reminder",
    ),
}

POSITIVE_WORDS: tuple[str, ...] = (
    "thank",
    "thanks",
    "appreciate",
    "great",
    "excellent",
    "wonderful",
    "happy",
    "pleased",
    "satisfied",
    "love",
    "perfect",
    "awesome",
)

NEGATIVE_WORDS: tuple[str, ...] = (
    "problem",
    "issue",
    "wrong",
    "bad",
    "terrible",
    "awful",
    "disappointed",
    "frustrated",
    "angry",
    "upset",
    "unhappy",
    "poor",
    "horrible",
    "worst",
    "hate",
    "unacceptable",
)


@dataclass(frozen=True)
class KeywordPattern:
    keyword: str
    regex: re.Pattern[str]


def compile_keyword(keyword: str) -> KeywordPattern:
    """Whole-word (or whole-phrase) case-insensitive matcher."""

    return KeywordPattern(keyword, re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE))


COMPILED_CATEGORY_PATTERNS: dict[EmailCategory, tuple[KeywordPattern, ...]] = {
    category: tuple(compile_keyword(k) for k in keywords)
    for category, keywords in CATEGORY_PATTERNS.items()
}
COMPILED_POSITIVE = tuple(compile_keyword(k) for k in POSITIVE_WORDS)
COMPILED_NEGATIVE = tuple(compile_keyword(k) for k in NEGATIVE_WORDS)
