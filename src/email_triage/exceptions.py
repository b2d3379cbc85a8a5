"""Custom exceptions for the email triage pipeline."""


class EmailTriageError(Exception):
    """Base exception for all email triage errors."""


class ValidationError(EmailTriageError):
    """Exception raised for malformed input (not retried)."""


class ExternalServiceError(EmailTriageError):
    """Exception raised when a classification or generation provider fails."""


class OllamaConnectionError(ExternalServiceError):
    """Exception raised when unable to connect to Ollama."""


class OllamaInferenceError(ExternalServiceError):
    """Exception raised when Ollama inference fails."""


class ServiceTimeoutError(ExternalServiceError):
    """Exception raised when an external call exceeds its time budget."""


class PersistenceError(EmailTriageError):
    """Exception raised when a storage read or write fails."""


class UnknownActionError(EmailTriageError):
    """Exception raised for a rule action with no registered handler."""
