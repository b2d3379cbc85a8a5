"""Outbound template selection and literal placeholder substitution.

Substitution is plain string replacement: no conditionals, no loops, no
escaping. Double-brace placeholders are replaced before single-brace ones
and the reply body goes in last, so reply text is never re-expanded.
Placeholders without a value are left untouched.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Sequence

import structlog

from email_triage.exceptions import PersistenceError
from email_triage.models.email import Email
from email_triage.models.responses import ResponseTemplate
from email_triage.models.tenant import BusinessContext
from email_triage.repository.tenant_repository import TemplateRepository
from email_triage.utils import utcnow

logger = structlog.get_logger()

RESPONSE_PLACEHOLDER = "response"


def select_template(
    templates: Sequence[ResponseTemplate], category: str | None = None
) -> ResponseTemplate | None:
    """Category match, else the tenant default, else the first template."""

    if not templates:
        return None
    if category:
        for t in templates:
            if t.category == category:
                return t
    for t in templates:
        if t.is_default:
            return t
    return templates[0]


def placeholder_values(
    business: BusinessContext,
    customer: Email | None = None,
    now: datetime | None = None,
) -> dict[str, str]:
    now = now or utcnow()
    values = {
        "business_name": business.business_name or "Our Business",
        "business_phone": business.phone or "",
        "business_email": business.email or "",
        "business_type": business.business_type or "Service Business",
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H:%M"),
    }
    if customer is not None:
        values["customer_name"] = customer.sender_name()
        values["customer_email"] = customer.sender_email()
        values["subject"] = customer.subject or ""
    return values


class TemplateEngine:
    def __init__(
        self,
        repository: TemplateRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self._clock = clock

    def apply_template(
        self,
        response_text: str,
        template: ResponseTemplate,
        business_context: BusinessContext | None = None,
        customer: Email | None = None,
    ) -> str:
        out = template.body_template or "{response}"
        values = placeholder_values(business_context or BusinessContext(), customer, self._clock())

        for name, value in values.items():
            out = out.replace("{{" + name + "}}", value)
        for name, value in values.items():
            out = out.replace("{" + name + "}", value)

        out = out.replace("{{" + RESPONSE_PLACEHOLDER + "}}", response_text)
        out = out.replace("{" + RESPONSE_PLACEHOLDER + "}", response_text)
        return out

    def render(
        self,
        tenant_id: str,
        response_text: str,
        category: str | None = None,
        business_context: BusinessContext | None = None,
        email: Email | None = None,
    ) -> tuple[str, str | None]:
        """Apply the tenant's best template.

        Returns:
            The rendered text and the id of the template used. Without templates
            (or when they cannot be loaded) the text comes back unchanged with id None.
        """
        if self.repository is None:
            return response_text, None

        try:
            templates = self.repository.list_templates(tenant_id, enabled_only=True)
        except PersistenceError as e:
            logger.warning("templates_unavailable", tenant_id=tenant_id, error=str(e))
            return response_text, None

        template = select_template(templates, category)
        if template is None:
            return response_text, None

        rendered = self.apply_template(response_text, template, business_context, email)
        logger.debug("template_applied", tenant_id=tenant_id, template_id=template.id)
        return rendered, template.id
