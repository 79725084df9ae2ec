"""
Handoff helpers - ticket priority, the operator-facing summary, and
click-to-call tokens sent to the customer when a human takes over.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from lawnops.schemas.sms import SessionState
from lawnops.utils.logging import mask_phone

logger = logging.getLogger(__name__)

HIGH_PRIORITY_REASONS = {"negative_sentiment"}
LOW_PRIORITY_REASONS = {"quote_declined"}

# 9 random bytes -> 12 URL-safe characters
TOKEN_BYTES = 9


def determine_priority(reason_codes: list[str], session: Optional[SessionState] = None) -> str:
    """High for an upset customer, low when they simply declined the price."""
    codes = set(reason_codes)
    if codes & HIGH_PRIORITY_REASONS:
        return "high"
    if codes and codes <= LOW_PRIORITY_REASONS:
        return "low"
    return "normal"


def build_handoff_summary(session: SessionState, reason_codes: list[str]) -> str:
    """One-paragraph summary an operator can read before calling back."""
    collected = session.collected
    parts = [
        f"Customer {mask_phone(session.from_phone)}",
        f"state {session.state}" + (f" ({session.current_field})" if session.current_field else ""),
        f"reasons: {', '.join(reason_codes) or 'none'}",
    ]
    address = session.derived.get("address_one_line") or collected.get("address")
    if address:
        parts.append(f"address: {address}")
    if collected.get("service"):
        parts.append(f"service: {collected['service']}")
    if collected.get("frequency"):
        parts.append(f"frequency: {collected['frequency']}")
    if session.quote and session.quote.display:
        parts.append(f"quote: {session.quote.display}")
    return "; ".join(parts)


def generate_click_to_call_token(
    session_id: str,
    ttl_minutes: int = 10,
    now: Optional[datetime] = None,
) -> tuple[str, datetime]:
    """
    Create a short-lived click-to-call token.
    Returns (token, expires_at). Expiry is checked lazily on resolve.
    """
    now = now or datetime.now(timezone.utc)
    token = secrets.token_urlsafe(TOKEN_BYTES)
    expires_at = now + timedelta(minutes=ttl_minutes)
    logger.debug("Click-to-call token issued for session %s", str(session_id)[:8])
    return token, expires_at


def build_click_to_call_url(token: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/c/{token}"
