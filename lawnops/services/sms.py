"""
SMS service - outbound delivery via Twilio.
Tracks delivery status, segment count, and cost.

Delivery is best-effort: send_sms never raises. A failed send is reported in
the returned dict and recorded on the outbound event; it never undoes the
session transition that produced the message.

Carrier error handling:
- 30006 (landline): Mark as landline, don't retry
- 30007 / 30008 (filtered / unknown): Retry with backoff
- 21610 (unsubscribed via carrier): Don't retry, customer opted out upstream
- 21211 / 21612 (invalid number): Don't retry
"""
import asyncio
import logging
import math
from typing import Optional

from lawnops.utils.logging import mask_phone

logger = logging.getLogger(__name__)

# SMS segment limits
GSM_SINGLE_SEGMENT = 160
GSM_MULTI_SEGMENT = 153
UCS2_SINGLE_SEGMENT = 70
UCS2_MULTI_SEGMENT = 67

# Maximum segments allowed (hard cap at 3)
MAX_SEGMENTS = 3
MAX_GSM_CHARS = GSM_MULTI_SEGMENT * MAX_SEGMENTS  # 459
MAX_UCS2_CHARS = UCS2_MULTI_SEGMENT * MAX_SEGMENTS  # 201

TWILIO_OUTBOUND_COST = 0.0079

# Retry configuration (kept short: sends run right after the webhook commits)
MAX_RETRIES = 2
RETRY_DELAYS_SECONDS = [1, 3]

PERMANENT_ERRORS = {
    "21211",  # Invalid "To" phone number
    "21610",  # Unsubscribed recipient (carrier-level opt-out)
    "30006",  # Landline or unreachable
    "21612",  # Invalid "To" phone number for SMS
}

TRANSIENT_ERRORS = {
    "30007",  # Message filtered by carrier
    "30008",  # Unknown error
    "30009",  # Missing segment
}

LANDLINE_ERRORS = {"30006"}
OPT_OUT_ERRORS = {"21610"}
INVALID_NUMBER_ERRORS = {"21211", "21612"}

TWILIO_CLIENT_TIMEOUT = 10


def _get_twilio_client():
    """Get a Twilio REST client with configured timeout."""
    from twilio.rest import Client as TwilioClient
    from twilio.http.http_client import TwilioHttpClient
    from lawnops.config import get_settings
    settings = get_settings()
    http_client = TwilioHttpClient(timeout=TWILIO_CLIENT_TIMEOUT)
    return TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        http_client=http_client,
    )


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous function in the thread pool to avoid blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


# GSM-7 basic character set (for encoding detection)
_GSM7_BASIC = set(
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞ ÆæßÉ"
    " !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "ÄÖÑÜabcdefghijklmnopqrstuvwxyz"
    "äöñüà§"
)

_GSM7_EXTENDED = set("^{}\\[~]|€")


def is_gsm7(message: str) -> bool:
    return all(c in _GSM7_BASIC or c in _GSM7_EXTENDED for c in message)


def count_segments(message: str) -> int:
    """Count SMS segments accounting for GSM-7 vs UCS-2 encoding."""
    if is_gsm7(message):
        length = sum(2 if c in _GSM7_EXTENDED else 1 for c in message)
        if length <= GSM_SINGLE_SEGMENT:
            return 1
        return math.ceil(length / GSM_MULTI_SEGMENT)
    if len(message) <= UCS2_SINGLE_SEGMENT:
        return 1
    return math.ceil(len(message) / UCS2_MULTI_SEGMENT)


def enforce_message_length(message: str) -> tuple[str, int, str]:
    """
    Cap a message at MAX_SEGMENTS.
    Returns: (message, segment_count, encoding)
    """
    encoding = "gsm7" if is_gsm7(message) else "ucs2"
    segments = count_segments(message)
    if segments <= MAX_SEGMENTS:
        return message, segments, encoding

    max_len = (MAX_GSM_CHARS if encoding == "gsm7" else MAX_UCS2_CHARS) - 3
    truncated = message[:max_len] + "..."
    new_segments = count_segments(truncated)
    logger.warning(
        "Message truncated from %d to %d segments (%s encoding)",
        segments, new_segments, encoding,
    )
    return truncated, new_segments, encoding


def classify_error(error_code: Optional[str]) -> str:
    """
    Classify a Twilio error code.
    Returns: "transient", "landline", "opt_out", "invalid", "permanent" or "unknown"
    """
    if not error_code:
        return "unknown"
    code = str(error_code)
    if code in OPT_OUT_ERRORS:
        return "opt_out"
    if code in LANDLINE_ERRORS:
        return "landline"
    if code in INVALID_NUMBER_ERRORS:
        return "invalid"
    if code in PERMANENT_ERRORS:
        return "permanent"
    if code in TRANSIENT_ERRORS:
        return "transient"
    return "unknown"


def _result(status: str, segments: int, encoding: str, sid: Optional[str] = None,
            error: Optional[str] = None, error_code: Optional[str] = None) -> dict:
    return {
        "success": status != "failed",
        "sid": sid,
        "status": status,
        "provider": "twilio",
        "segments": segments,
        "cost_usd": segments * TWILIO_OUTBOUND_COST if sid else 0.0,
        "error": error,
        "error_code": error_code,
        "encoding": encoding,
    }


async def send_sms(
    to: str,
    body: str,
    from_phone: Optional[str] = None,
    messaging_service_sid: Optional[str] = None,
) -> dict:
    """
    Send one SMS via Twilio with retry on transient carrier errors.

    Returns: {
        "success": bool, "sid": str|None, "status": str, "provider": str,
        "segments": int, "cost_usd": float,
        "error": str|None, "error_code": str|None, "encoding": str,
    }
    """
    body, segments, encoding = enforce_message_length(body)
    masked = mask_phone(to)

    last_error = None
    last_error_code = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            result = await _send_twilio(to, body, from_phone, messaging_service_sid)
            logger.info(
                "SMS sent via Twilio to %s (%d segments, %s): %s",
                masked, segments, encoding, result.get("sid", "unknown"),
                extra={"phone": masked, "provider": "twilio"},
            )
            return _result(result.get("status") or "sent", segments, encoding, sid=result.get("sid"))
        except Exception as e:
            error_code = _extract_error_code(e)
            error_class = classify_error(error_code)
            last_error = str(e)
            last_error_code = error_code

            if error_class in ("permanent", "opt_out", "landline", "invalid"):
                logger.warning(
                    "Twilio permanent error for %s: code=%s class=%s",
                    masked, error_code, error_class,
                    extra={"phone": masked, "provider": "twilio", "error_code": error_code},
                )
                return _result("failed", segments, encoding, error=last_error, error_code=error_code)

            if attempt < MAX_RETRIES:
                delay = RETRY_DELAYS_SECONDS[min(attempt, len(RETRY_DELAYS_SECONDS) - 1)]
                logger.warning(
                    "Twilio transient error for %s (attempt %d/%d): %s. Retrying in %ds...",
                    masked, attempt + 1, MAX_RETRIES + 1, error_code or str(e), delay,
                )
                await asyncio.sleep(delay)

    logger.error("Twilio exhausted retries for %s: %s", masked, last_error)
    return _result("failed", segments, encoding, error=last_error, error_code=last_error_code)


def _extract_error_code(error: Exception) -> Optional[str]:
    """Extract Twilio error code from exception."""
    code = getattr(error, "code", None)
    if code is not None:
        return str(code)
    msg = str(error)
    for known_code in PERMANENT_ERRORS | TRANSIENT_ERRORS:
        if known_code in msg:
            return known_code
    return None


async def _send_twilio(
    to: str,
    body: str,
    from_phone: Optional[str] = None,
    messaging_service_sid: Optional[str] = None,
) -> dict:
    """Send via Twilio REST API (non-blocking)."""
    from lawnops.config import get_settings
    settings = get_settings()
    client = _get_twilio_client()

    kwargs = {"to": to, "body": body}
    if messaging_service_sid or settings.twilio_messaging_service_sid:
        kwargs["messaging_service_sid"] = (
            messaging_service_sid or settings.twilio_messaging_service_sid
        )
    elif from_phone:
        kwargs["from_"] = from_phone
    else:
        raise ValueError("Either from_phone or messaging_service_sid required")

    message = await _run_sync(client.messages.create, **kwargs)
    return {"sid": message.sid, "status": message.status}
