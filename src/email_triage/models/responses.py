"""Reply generation and templating models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StyleProfile(BaseModel):
    """A tenant's learned communication style. Maintained outside this package."""

    tone: str = Field(default="professional")
    formality: str = Field(default="neutral")
    signature_phrases: list[str] = Field(default_factory=list)
    vocabulary_patterns: list[str] = Field(default_factory=list)
    average_email_length: int | None = Field(default=None, description="Words per email")
    greeting: str | None = None
    closing: str | None = None
    confidence: int | None = Field(default=None, ge=0, le=100)


class GeneratedResponse(BaseModel):
    """A candidate reply."""

    text: str
    style_applied: bool = False
    confidence: int = Field(ge=0, le=100)
    template_id: str | None = None
    fallback_used: bool = False
    variation: int | None = None


class ResponseTemplate(BaseModel):
    """Tenant outbound template with literal placeholders."""

    id: str
    tenant_id: str
    name: str
    category: str = "general"
    body_template: str = "{response}"
    is_default: bool = False
    enabled: bool = True
