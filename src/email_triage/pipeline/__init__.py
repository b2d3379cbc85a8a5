"""Pipeline orchestration and queue workers."""

from email_triage.pipeline.orchestrator import EmailPipeline, validate_email
from email_triage.pipeline.worker import QueueWorker

__all__ = ["EmailPipeline", "QueueWorker", "validate_email"]
