"""Prompt contract for classifying inbound business emails."""

from __future__ import annotations

PROMPT_VERSION = "email-classify-v1"


def build_classification_messages(
    *,
    subject: str | None,
    sender: str | None,
    body: str | None,
    max_body_chars: int = 2000,
) -> list[dict[str, str]]:
    """Build chat messages that request strict JSON output.

    Args:
        subject: Email subject (may be None).
        sender: Raw From header.
        body: Plain-text body; truncated to `max_body_chars`.
        max_body_chars: Body truncation limit.

    Returns:
        System and user messages for the chat endpoint.
    """

    subj = (subject or "").strip()
    frm = (sender or "").strip()
    text = (body or "").strip()
    if len(text) > max_body_chars:
        text = text[:max_body_chars]

    system = (
        "You classify emails sent to a small service business.\n"
        "Return ONLY valid JSON. No markdown. No code fences. No commentary.\n\n"
        "Fields:\n"
        "- category: one of {urgent, appointment, complaint, inquiry, followup, general}\n"
        "- urgency: one of {low, normal, high, critical}\n"
        "- sentiment: one of {positive, neutral, negative}\n"
        "- confidence: integer 0..100\n"
        "- keywords: list of up to 10 short strings, most relevant first\n"
        "- reasoning: one short sentence\n\n"
        "Rules:\n"
        "- Values MUST be exactly one of the allowed values (lowercase).\n"
        "- Emergencies (leaks, floods, no heat, safety issues) are urgent with critical urgency.\n"
        "- Use only information supported by the email content."
    )
    user = (
        f"Subject: {subj}\n"
        f"From: {frm}\n\n"
        "Body:\n"
        "---\n"
        f"{text}\n"
        "---\n"
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]
