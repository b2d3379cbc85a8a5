"""Inbound email model.

Emails are owned by the caller. The pipeline never mutates one; annotations
(classification, routing) travel alongside it in results and queue metadata.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Email(BaseModel):
    """An inbound business email."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: f"email_{uuid.uuid4().hex}", description="Email ID")
    from_address: str = Field(default="", alias="from", description="Raw From header")
    to: str = Field(default="", description="Recipient address")
    subject: str = Field(default="", description="Subject header")
    body: str = Field(default="", description="Plain-text body")
    received_at: datetime = Field(default_factory=_utcnow, description="When the email arrived")
    provider_message_id: str | None = Field(
        default=None, description="Message ID assigned by the mail provider"
    )
    provider: str = Field(default="unknown", description="Mail provider name (gmail, outlook, ...)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form caller metadata")

    def text_for_analysis(self) -> str:
        """Lower-cased subject and body joined for keyword matching."""

        return f"{self.subject or ''} {self.body or ''}".lower()

    def is_blank(self) -> bool:
        return not (self.subject or "").strip() and not (self.body or "").strip()

    def sender_email(self) -> str:
        return parseaddr(self.from_address or "")[1].lower()

    def sender_name(self) -> str:
        """Display name of the sender, falling back to the mailbox name."""

        name, addr = parseaddr(self.from_address or "")
        if name:
            return name
        if addr:
            return addr.split("@", 1)[0]
        return ""
