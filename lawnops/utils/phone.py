"""
Phone number normalization to E.164 for US numbers.
Sessions are keyed by (business, phone) so every inbound number must be
normalized the same way before lookup.
"""
import re
from typing import Optional

_DIGITS_ONLY = re.compile(r"\D")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164 format.

    Handles:
    - (555) 123-4567 -> +15551234567
    - 555.123.4567   -> +15551234567
    - 1-555-123-4567 -> +15551234567
    - +15551234567   -> +15551234567

    Returns None if the number is invalid.
    """
    if not phone or not phone.strip():
        return None

    cleaned = phone.strip()
    digits = _DIGITS_ONLY.sub("", cleaned)

    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if cleaned.startswith("+") and 10 <= len(digits) <= 15:
        return f"+{digits}"
    return None
