"""Prompt contract for style-aware reply generation."""

from __future__ import annotations

from email_triage.models.email import Email
from email_triage.models.responses import StyleProfile
from email_triage.models.tenant import BusinessContext

MAX_SIGNATURE_PHRASES = 5
MAX_VOCABULARY = 10


def build_response_messages(
    *,
    profile: StyleProfile,
    email: Email,
    business: BusinessContext,
    category: str | None = None,
    variation: int | None = None,
    max_body_chars: int = 2000,
) -> list[dict[str, str]]:
    """Build chat messages asking for a reply in the tenant's own voice.

    The system message carries the style profile; the user message carries the
    inbound email. Only plain reply text is requested.
    """

    phrases = [p for p in profile.signature_phrases if p.strip()][:MAX_SIGNATURE_PHRASES]
    vocabulary = [v for v in profile.vocabulary_patterns if v.strip()][:MAX_VOCABULARY]

    lines = [
        f"You write email replies on behalf of {business.business_name}, a {business.business_type}.",
        f"Tone: {profile.tone}.",
        f"Formality: {profile.formality}.",
    ]
    if phrases:
        lines.append("Signature phrases to use naturally: " + "; ".join(phrases) + ".")
    if vocabulary:
        lines.append("Preferred vocabulary: " + ", ".join(vocabulary) + ".")
    if profile.average_email_length:
        lines.append(f"Preferred length: about {profile.average_email_length} words.")
    if profile.greeting:
        lines.append(f"Open with a greeting like: {profile.greeting}")
    if profile.closing:
        lines.append(f"Close with: {profile.closing}")
    if business.phone:
        lines.append(f"The business phone number is {business.phone}.")
    lines.append("Return ONLY the reply text. No subject line. No commentary.")

    body = (email.body or "").strip()[:max_body_chars]
    user = (
        f"Category: {category or 'general'}\n"
        f"From: {email.from_address}\n"
        f"Subject: {email.subject}\n\n"
        "Body:\n"
        "---\n"
        f"{body}\n"
        "---\n"
    )
    if variation is not None:
        user += f"\nWrite variation #{variation} of the reply.\n"

    return [
        {"role": "system", "content": "\n".join(lines)},
        {"role": "user", "content": user},
    ]
