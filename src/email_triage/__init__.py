"""Email Triage - classification, routing and reply pipeline for business inboxes.

This package classifies inbound business emails, evaluates tenant business
rules, routes each message, runs escalations and drafts replies using an
Ollama LLM with deterministic fallbacks.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from email_triage.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
