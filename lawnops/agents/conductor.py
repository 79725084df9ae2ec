"""
Conductor - runs one inbound SMS through the intake engine and executes
what the engine decided.

CRITICAL PRINCIPLE: COMMIT FIRST, SEND AFTER.
The engine's transition, the inbound/outbound event log, and every side
effect (handoff ticket, click-to-call token, job request) are committed in
one transaction. Outbound SMS go out only after that commit; a failed send
is recorded on its event and never rolls the transition back.

Per-message guarantees:
  1. Tenant resolved by the caller; no business → NoActiveTenantError.
  2. At-least-once delivery: Redis SET NX pre-check, then the unique
     sms_events.event_id (provider_sms_{MessageSid}) as the durable check.
  3. Per-session serialisation: session_lock(session_id) around the
     read-modify-write. Lock timeout raises LockTimeoutError (retryable).
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.agents.sms_intake import build_session_id, handle_inbound_message
from lawnops.config import get_settings
from lawnops.errors import InputError, NoActiveTenantError
from lawnops.models.business import Business
from lawnops.models.click_to_call_token import ClickToCallToken
from lawnops.models.event_log import EventLog
from lawnops.models.handoff_ticket import HandoffTicket
from lawnops.models.job_request import JobRequest
from lawnops.models.sms_event import SmsEvent
from lawnops.schemas.sms import InboundMessage, IntakeAction, IntakeResult, OutboundMessage
from lawnops.services.handoff import build_click_to_call_url, generate_click_to_call_token
from lawnops.services.service_templates import get_service_template
from lawnops.services.session_store import (
    append_event,
    create_callback_token,
    create_handoff_ticket,
    event_exists,
    get_session_by_phone,
    upsert_session,
)
from lawnops.services.sms import send_sms
from lawnops.utils.dedup import is_duplicate_event, make_inbound_event_id, release_event
from lawnops.utils.locks import session_lock
from lawnops.utils.logging import mask_phone
from lawnops.utils.metrics import Timer
from lawnops.utils.phone import normalize_phone
from lawnops.utils.templates import render_template

logger = logging.getLogger(__name__)


async def process_inbound_sms(
    db: AsyncSession,
    message: InboundMessage,
    business: Optional[Business],
) -> dict:
    """
    Process one inbound SMS end to end.

    Returns: {"session_id", "status", "state", "outbound_count", "actions", "response_ms"}
    status is the session status, or "duplicate" for a redelivered message.
    """
    timer = Timer().start()

    if business is None or not business.is_active:
        raise NoActiveTenantError()

    phone = normalize_phone(message.from_phone)
    if not phone:
        raise InputError("Inbound message is missing a valid from_phone", code="missing_from_phone")
    if not message.text or not message.text.strip():
        raise InputError("Inbound message text is empty", code="empty_text")

    message = message.model_copy(update={
        "from_phone": phone,
        "business_id": str(business.id),
        "account_id": message.account_id or business.account_id,
        "received_at": message.received_at or datetime.now(timezone.utc),
    })
    session_id = build_session_id(message.business_id, phone)
    event_id = make_inbound_event_id(message.provider_message_id)

    if await is_duplicate_event(event_id):
        return _duplicate_response(session_id, timer)

    try:
        async with session_lock(session_id):
            if await event_exists(db, event_id):
                logger.info("Inbound event %s already processed", event_id)
                return _duplicate_response(session_id, timer)

            result, outbound, outbound_events = await _run_engine_and_persist(
                db, message, business, event_id, timer,
            )
            await db.commit()

            await _deliver(db, business, outbound, outbound_events)
    except Exception:
        # Let the provider's redelivery through once this attempt is gone
        await release_event(event_id)
        raise

    response_ms = timer.stop()
    logger.info(
        "Inbound SMS processed for session %s in %dms (state=%s, outbound=%d)",
        session_id[:8], response_ms, result.session.state, len(outbound),
        extra={"session_id": session_id, "business_id": str(business.id)},
    )
    return {
        "session_id": result.session.session_id,
        "status": result.session.status,
        "state": result.session.state,
        "outbound_count": len(outbound),
        "actions": [a.type for a in result.actions],
        "response_ms": response_ms,
    }


def _duplicate_response(session_id: str, timer: Timer) -> dict:
    return {
        "session_id": session_id,
        "status": "duplicate",
        "state": None,
        "outbound_count": 0,
        "actions": [],
        "response_ms": timer.elapsed_ms,
    }


async def _run_engine_and_persist(
    db: AsyncSession,
    message: InboundMessage,
    business: Business,
    event_id: Optional[str],
    timer: Timer,
) -> tuple[IntakeResult, list[OutboundMessage], list[SmsEvent]]:
    settings = get_settings()

    prior = await get_session_by_phone(db, business.id, message.from_phone)
    template_id = (
        prior.service_template_id if prior
        else business.service_template_id or settings.sms_default_template_id
    )
    template = get_service_template(template_id)

    result = handle_inbound_message(
        message,
        prior,
        business.name,
        template=template,
        max_attempts=settings.sms_max_field_attempts,
    )
    session = result.session
    session_uuid = uuid.UUID(session.session_id)
    state_before = prior.state if prior else "INTENT"

    await upsert_session(db, session, last_provider_message_id=message.provider_message_id)

    inbound_event_id = event_id or f"inbound_{uuid.uuid4().hex}"
    await append_event(db, SmsEvent(
        event_id=inbound_event_id,
        session_id=session_uuid,
        business_id=business.id,
        direction="inbound",
        from_phone=message.from_phone,
        to_phone=message.to_phone,
        text=message.text,
        provider_payload=message.provider_payload,
        state_before=state_before,
        state_after=session.state,
        delivery_status="received",
    ))

    outbound = list(result.outbound_messages)
    for action in result.actions:
        extra_message = await _execute_action(db, action, business, session_uuid)
        if extra_message:
            outbound.append(extra_message)

    outbound_events = []
    for idx, out in enumerate(outbound):
        outbound_events.append(await append_event(db, SmsEvent(
            event_id=f"{inbound_event_id}_out_{idx}",
            session_id=session_uuid,
            business_id=business.id,
            direction="outbound",
            from_phone=business.sms_phone,
            to_phone=out.to,
            text=out.text,
            state_before=state_before,
            state_after=session.state,
            delivery_status="queued",
        )))

    db.add(EventLog(
        business_id=business.id,
        session_id=session_uuid,
        action="sms_processed",
        duration_ms=timer.elapsed_ms,
        message=f"{state_before} → {session.state}",
        data={
            "event_id": inbound_event_id,
            "status": session.status,
            "current_field": session.current_field,
            "actions": [a.type for a in result.actions],
            "outbound_count": len(outbound),
        },
    ))
    await db.flush()
    return result, outbound, outbound_events


async def _execute_action(
    db: AsyncSession,
    action: IntakeAction,
    business: Business,
    session_uuid: uuid.UUID,
) -> Optional[OutboundMessage]:
    """Carry out one engine action. Returns an extra outbound message if the action produces one."""
    payload = action.payload

    if action.type == "create_handoff_ticket":
        ticket = await create_handoff_ticket(db, HandoffTicket(
            session_id=session_uuid,
            business_id=business.id,
            account_id=payload.get("account_id"),
            priority=payload.get("priority", "normal"),
            reason_codes=payload.get("reason_codes", []),
            summary=payload.get("summary", ""),
        ))
        db.add(EventLog(
            business_id=business.id,
            session_id=session_uuid,
            action="handoff_created",
            message=", ".join(ticket.reason_codes),
            data={"ticket_id": str(ticket.ticket_id), "priority": ticket.priority},
        ))
        return None

    if action.type == "generate_click_to_call_token":
        settings = get_settings()
        ttl = payload.get("ttl_minutes") or settings.click_to_call_ttl_minutes
        token, expires_at = generate_click_to_call_token(str(session_uuid), ttl_minutes=ttl)
        await create_callback_token(db, ClickToCallToken(
            session_id=session_uuid,
            business_id=business.id,
            token=token,
            expires_at=expires_at,
        ))
        url = build_click_to_call_url(token, settings.app_base_url)
        text = render_template(
            payload.get("message_template") or "Tap to call us: {url}",
            url=url,
            business_name=business.name,
        )
        return OutboundMessage(to=payload["to"], text=text)

    if action.type == "create_job_request":
        job = await _create_job_request(db, payload, business, session_uuid)
        db.add(EventLog(
            business_id=business.id,
            session_id=session_uuid,
            job_request_id=job.id,
            action="job_request_created",
            message=f"Booked via SMS for {payload.get('preferred_date')}",
        ))
        return None

    if action.type == "forward_to_human":
        ticket = (await db.execute(
            select(HandoffTicket)
            .where(HandoffTicket.session_id == session_uuid, HandoffTicket.status != "closed")
            .order_by(HandoffTicket.created_at.desc())
            .limit(1)
        )).scalar_one_or_none()
        db.add(EventLog(
            business_id=business.id,
            session_id=session_uuid,
            action="message_forwarded",
            message=payload.get("text"),
            data={"ticket_id": str(ticket.ticket_id) if ticket else None},
        ))
        logger.info(
            "Forwarded message from %s to open ticket %s",
            mask_phone(payload.get("from_phone")), str(ticket.ticket_id)[:8] if ticket else "-",
        )
        return None

    logger.error("Unknown intake action: %s", action.type)
    return None


async def _create_job_request(
    db: AsyncSession,
    payload: dict,
    business: Business,
    session_uuid: uuid.UUID,
) -> JobRequest:
    preferred = payload.get("preferred_date")
    job = JobRequest(
        business_id=business.id,
        customer_phone=payload.get("customer_phone"),
        address=payload.get("address"),
        zip_code=payload.get("zip_code"),
        lat=payload.get("lat"),
        lng=payload.get("lng"),
        services=payload.get("services", []),
        frequency=payload.get("frequency"),
        required_skills=payload.get("required_skills", []),
        required_equipment=payload.get("required_equipment", []),
        crew_size_min=payload.get("crew_size_min", 1),
        labor_low_minutes=payload.get("labor_low_minutes", 60),
        labor_high_minutes=payload.get("labor_high_minutes", 60),
        lot_area_sqft=payload.get("lot_area_sqft"),
        price_low_usd=payload.get("price_low_usd"),
        price_high_usd=payload.get("price_high_usd"),
        requires_site_visit=payload.get("requires_site_visit", False),
        source="sms",
        sms_session_id=session_uuid,
        preferred_date=date.fromisoformat(preferred) if preferred else None,
        status="new",
    )
    db.add(job)
    await db.flush()
    logger.info("Job request %s created from SMS session %s", str(job.id)[:8], str(session_uuid)[:8])
    return job


async def _deliver(
    db: AsyncSession,
    business: Business,
    outbound: list[OutboundMessage],
    outbound_events: list[SmsEvent],
) -> None:
    """Send committed outbound messages in order and record delivery on their events."""
    if not outbound:
        return
    for out, event in zip(outbound, outbound_events):
        result = await send_sms(
            to=out.to,
            body=out.text,
            from_phone=business.sms_phone,
            messaging_service_sid=business.messaging_service_sid,
        )
        event.provider_sid = result.get("sid")
        event.delivery_status = "sent" if result.get("success") else "failed"
        event.error_code = result.get("error_code")
        if not result.get("success"):
            logger.warning(
                "Outbound SMS to %s failed: %s",
                mask_phone(out.to), result.get("error_code") or result.get("error"),
                extra={"phone": mask_phone(out.to), "error_code": result.get("error_code")},
            )
    try:
        await db.commit()
    except Exception as e:
        logger.error("Failed to record outbound delivery status: %s", str(e))
        await db.rollback()
