"""
PII Masking
===========

Fixed masking scheme for anything that may reach a log line or audit event.
"""

from __future__ import annotations

from typing import Any


def mask_pii(value: Any) -> str:
    """
    Mask a personally identifying value.

    Returns ``"undefined"`` for missing values, ``"****"`` for strings of
    length 4 or less, otherwise the first two and last two characters
    around ``"****"``.

    Example:
        >>> mask_pii("bob@example.com")
        'bo****om'
    """
    if value is None:
        return "undefined"
    text = str(value)
    if not text:
        return "undefined"
    if len(text) <= 4:
        return "****"
    return text[:2] + "****" + text[-2:]
