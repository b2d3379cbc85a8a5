"""Classification result models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class EmailCategory(str, Enum):
    """Email category enumeration.

    Declaration order matters: the rule-based scorer breaks ties in favour
    of the earliest category.
    """

    URGENT = "urgent"
    APPOINTMENT = "appointment"
    COMPLAINT = "complaint"
    INQUIRY = "inquiry"
    FOLLOWUP = "followup"
    GENERAL = "general"


class UrgencyLevel(str, Enum):
    """Email urgency enumeration."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Sentiment(str, Enum):
    """Email sentiment enumeration."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ClassificationMethod(str, Enum):
    """Which strategy produced a classification."""

    AI = "ai"
    RULES = "rules"
    DEFAULT = "default"


DEFAULT_CONFIDENCE = 25


class Classification(BaseModel):
    """Email classification result.

    `confidence` is an opaque 0-100 score. For rule-based results it is a
    coarse keyword count heuristic, not a calibrated probability.
    """

    category: EmailCategory = Field(default=EmailCategory.GENERAL, description="Assigned category")
    urgency: UrgencyLevel = Field(default=UrgencyLevel.NORMAL, description="Urgency level")
    confidence: int = Field(default=DEFAULT_CONFIDENCE, ge=0, le=100, description="Confidence score")
    sentiment: Sentiment = Field(default=Sentiment.NEUTRAL, description="Overall sentiment")
    keywords: list[str] = Field(default_factory=list, description="Relevance-ranked keywords")
    method: ClassificationMethod = Field(
        default=ClassificationMethod.DEFAULT, description="Strategy that produced this result"
    )
    reasoning: str = Field(default="", description="Explanation for the classification")
    requires_response: bool = Field(default=False, description="Whether a reply is expected")

    @classmethod
    def default(cls, reasoning: str = "Default classification") -> "Classification":
        return cls(
            category=EmailCategory.GENERAL,
            urgency=UrgencyLevel.NORMAL,
            confidence=DEFAULT_CONFIDENCE,
            sentiment=Sentiment.NEUTRAL,
            method=ClassificationMethod.DEFAULT,
            reasoning=reasoning,
            requires_response=False,
        )
