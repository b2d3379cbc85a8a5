"""Fixed reply templates used when styled generation is unavailable."""

from __future__ import annotations

from email_triage.classification.patterns import COMPILED_CATEGORY_PATTERNS
from email_triage.models.classification import EmailCategory
from email_triage.models.tenant import BusinessContext

FALLBACK_TEMPLATES: dict[str, str] = {
    "complaint": (
        "Thank you for bringing this to our attention. We take all customer concerns "
        "seriously and will investigate this matter promptly. We will follow up with "
        "you within 24 hours."
    ),
    "appointment": (
        "Thank you for your interest in scheduling service with us. We will review your "
        "request and get back to you with available time slots within 24 hours."
    ),
    "inquiry": (
        "Thank you for your inquiry. We have received your message and will respond "
        "with the information you need within 24 hours."
    ),
    "general": "Thank you for your email. We have received your message and will respond promptly.",
}

# Checked in this order; the first category with a keyword hit wins.
SNIFF_ORDER: tuple[EmailCategory, ...] = (
    EmailCategory.COMPLAINT,
    EmailCategory.APPOINTMENT,
    EmailCategory.INQUIRY,
)


def sniff_template_key(text: str, category: str | None = None) -> str:
    """Pick a fallback template by keyword sniffing, then by the given category."""

    for candidate in SNIFF_ORDER:
        if any(p.regex.search(text) for p in COMPILED_CATEGORY_PATTERNS[candidate]):
            return candidate.value

    if category in FALLBACK_TEMPLATES:
        return category
    return "general"


def render_fallback(key: str, business: BusinessContext) -> str:
    body = FALLBACK_TEMPLATES.get(key, FALLBACK_TEMPLATES["general"])
    contact = f"\n\nIf this is urgent, please call us at {business.phone}." if business.phone else ""
    return f"{body}{contact}\n\nBest regards,\n{business.business_name}"


def received_message_reply(business: BusinessContext) -> str:
    """The last-resort reply used when the pipeline itself degrades."""

    phone = business.phone or "our main number"
    return (
        "Thank you for your email. We have received your message and will respond promptly.\n\n"
        f"If this is urgent, please contact us directly at {phone}.\n\n"
        f"Best regards,\n{business.business_name or 'Our Team'}"
    )
