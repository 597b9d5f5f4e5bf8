"""Free-text helpers shared by the services."""

import bleach


def sanitize(text):
    """Strip all HTML tags from user input. Non-strings pass through."""
    if not isinstance(text, str):
        return text
    return bleach.clean(text, tags=[], strip=True).strip()


def clean_or_none(text):
    """Sanitized text, or None when nothing is left."""
    cleaned = sanitize(text)
    if isinstance(cleaned, str) and not cleaned:
        return None
    return cleaned
