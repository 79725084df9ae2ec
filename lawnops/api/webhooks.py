"""
Twilio webhooks - inbound customer SMS and outbound delivery status.

Inbound flow:
1. Signature validation (X-Twilio-Signature)
2. Tenant resolved from the To number (never a default business)
3. Conductor: dedup, per-session lock, engine, commit, send
A held session lock answers 503 so Twilio redelivers the message later.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.agents.conductor import process_inbound_sms
from lawnops.database import get_db
from lawnops.models.business import Business
from lawnops.models.sms_event import SmsEvent
from lawnops.schemas.api_responses import WebhookResponse
from lawnops.schemas.sms import InboundMessage
from lawnops.utils.locks import LockTimeoutError
from lawnops.utils.logging import mask_phone
from lawnops.utils.phone import normalize_phone
from lawnops.utils.webhook_signatures import compute_payload_hash, validate_twilio_request

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhook", tags=["webhooks"])


async def _validate_signature(request: Request, form_params: dict) -> None:
    """Validate the Twilio signature and raise 401 if invalid."""
    if not validate_twilio_request(request, form_params):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning("Invalid Twilio webhook signature from %s", client_ip)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


async def resolve_business_by_number(db: AsyncSession, to_phone: str) -> Business | None:
    """The business whose SMS number received the message."""
    phone = normalize_phone(to_phone)
    if not phone:
        return None
    result = await db.execute(
        select(Business).where(Business.sms_phone == phone, Business.is_active == True)  # noqa: E712
    )
    return result.scalar_one_or_none()


@router.post("/twilio/sms", response_model=WebhookResponse)
async def twilio_sms_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Twilio inbound SMS webhook.
    Twilio sends form-encoded data, not JSON.
    """
    body = await request.body()
    form_data = await request.form()
    form_params = dict(form_data)

    await _validate_signature(request, form_params)

    from_phone = form_params.get("From", "")
    to_phone = form_params.get("To", "")
    text = form_params.get("Body", "")
    if not from_phone or not text:
        raise HTTPException(status_code=400, detail="Missing From or Body")

    business = await resolve_business_by_number(db, to_phone)
    logger.info(
        "Inbound SMS from %s to %s", mask_phone(from_phone), mask_phone(to_phone),
        extra={"business_id": str(business.id) if business else None},
    )

    message = InboundMessage(
        from_phone=from_phone,
        to_phone=normalize_phone(to_phone) or to_phone,
        text=text,
        provider_message_id=form_params.get("MessageSid") or form_params.get("SmsSid"),
        provider_payload={**form_params, "payload_sha256": compute_payload_hash(body)},
    )

    try:
        result = await process_inbound_sms(db, message, business)
    except LockTimeoutError as e:
        logger.warning("Session busy, asking Twilio to retry: %s", str(e))
        raise HTTPException(status_code=503, detail="Session busy, retry later", headers={"Retry-After": "5"})

    return WebhookResponse(
        status=result["status"],
        session_id=result["session_id"],
        state=result["state"],
        message=f"Processed in {result.get('response_ms', 0)}ms",
    )


@router.post("/twilio/status")
async def twilio_status_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Twilio delivery status callback - update the outbound event's delivery status."""
    form_data = await request.form()
    form_params = dict(form_data)
    await _validate_signature(request, form_params)

    message_sid = form_params.get("MessageSid", "")
    status = form_params.get("MessageStatus", "")
    if not message_sid or not status:
        return {"status": "ignored"}

    result = await db.execute(select(SmsEvent).where(SmsEvent.provider_sid == message_sid))
    event = result.scalar_one_or_none()
    if event is None:
        logger.debug("Status callback for unknown message %s", message_sid)
        return {"status": "unknown_message"}

    event.delivery_status = status
    if form_params.get("ErrorCode"):
        event.error_code = form_params["ErrorCode"]
    await db.commit()
    return {"status": "updated"}
