"""Escaping for user-supplied free text.

Names, ticket titles and bodies, profile fields and contact messages are
stored HTML-escaped so the browser dashboard can render them as-is.
Escaping can grow a value up to six times, so the stored length is checked
against the column width after escaping.
"""

import html
from typing import Optional

from app.core.exceptions import ValidationError


def sanitize_text(
    value: Optional[str],
    max_length: Optional[int] = None,
    field: str = "Text",
) -> Optional[str]:
    """Trim and HTML-escape ``&``, ``<``, ``>``, ``"`` and ``'``.

    Raises:
        ValidationError: the escaped value is longer than ``max_length``.
    """
    if value is None:
        return None
    escaped = html.escape(value.strip(), quote=True)
    if max_length is not None and len(escaped) > max_length:
        raise ValidationError(f"{field} is too long")
    return escaped


def sanitize_optional(
    value: Optional[str],
    max_length: Optional[int] = None,
    field: str = "Text",
) -> Optional[str]:
    """Like ``sanitize_text``, but blank input becomes None so the field is cleared."""
    if value is None or not value.strip():
        return None
    return sanitize_text(value, max_length, field)
