"""
Webhook signature validation - verify inbound Twilio webhooks are authentic.
Twilio signs with HMAC-SHA1 via X-Twilio-Signature over the public URL and form params.
"""
import hashlib
import logging

from twilio.request_validator import RequestValidator

logger = logging.getLogger(__name__)


def validate_twilio_signature(
    auth_token: str,
    signature: str,
    url: str,
    params: dict,
) -> bool:
    """
    Validate Twilio webhook signature using their RequestValidator.
    Returns True if valid, False if invalid or on error.
    """
    if not signature:
        logger.warning("Missing X-Twilio-Signature header")
        return False

    try:
        validator = RequestValidator(auth_token)
        return validator.validate(url, params, signature)
    except Exception as e:
        logger.error("Twilio signature validation error: %s", str(e))
        return False


def compute_payload_hash(body: bytes) -> str:
    """SHA-256 of the raw payload, kept on the inbound event for audit."""
    return hashlib.sha256(body).hexdigest()


def get_webhook_url(request) -> str:
    """
    Reconstruct the public URL Twilio signed.
    Behind a reverse proxy request.url is the internal URL, so the
    X-Forwarded-Proto and X-Forwarded-Host headers win when present.
    """
    proto = request.headers.get("x-forwarded-proto", request.url.scheme)
    host = request.headers.get("x-forwarded-host") or request.headers.get("host", "")
    base = f"{proto}://{host}{request.url.path}"
    if request.url.query:
        return f"{base}?{request.url.query}"
    return base


def validate_twilio_request(request, form_params: dict) -> bool:
    """
    Validate an inbound Twilio request against the configured auth token.
    Unsigned requests are accepted only outside production with
    ALLOW_UNSIGNED_WEBHOOKS=true.
    """
    from lawnops.config import get_settings
    settings = get_settings()

    signature = request.headers.get("x-twilio-signature", "")
    if not signature and settings.allow_unsigned_webhooks and settings.app_env != "production":
        logger.warning("Accepting unsigned Twilio webhook (ALLOW_UNSIGNED_WEBHOOKS=true)")
        return True

    return validate_twilio_signature(
        settings.twilio_auth_token,
        signature,
        get_webhook_url(request),
        form_params,
    )
