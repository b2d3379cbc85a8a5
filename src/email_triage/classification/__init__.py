"""Email classification."""

from email_triage.classification.classifier import EmailClassifier
from email_triage.classification.strategies import (
    ClassificationStrategy,
    DefaultClassificationStrategy,
    LLMClassificationStrategy,
    RuleBasedClassificationStrategy,
)

__all__ = [
    "ClassificationStrategy",
    "DefaultClassificationStrategy",
    "EmailClassifier",
    "LLMClassificationStrategy",
    "RuleBasedClassificationStrategy",
]
