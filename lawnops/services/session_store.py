"""
Session store - durable SMS conversation state over SQLAlchemy.

Maps the engine's SessionState values to sms_sessions rows and back, and
appends the records the engine's actions produce. The store never
interprets session fields; the engine is the only writer of their contents.
All functions work inside the caller's transaction (flush, never commit).
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.errors import InputError, NotFoundError, TokenExpiredError
from lawnops.models.click_to_call_token import ClickToCallToken
from lawnops.models.handoff_ticket import HandoffTicket
from lawnops.models.sms_event import SmsEvent
from lawnops.models.sms_session import SmsSession
from lawnops.schemas.sms import SessionState

logger = logging.getLogger(__name__)


def to_uuid(value, field: str = "id") -> uuid.UUID:
    """Coerce a str/UUID id. Malformed ids are input errors, not 500s."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise InputError(f"Invalid {field}: {value}", code=f"invalid_{field}")


def row_to_state(row: SmsSession) -> SessionState:
    return SessionState(
        session_id=str(row.session_id),
        account_id=row.account_id,
        business_id=str(row.business_id),
        from_phone=row.from_phone,
        to_phone=row.to_phone,
        status=row.status,
        service_template_id=row.service_template_id,
        state=row.state,
        current_field=row.current_field,
        attempt_counters=dict(row.attempt_counters or {}),
        confidence=dict(row.confidence or {}),
        collected=dict(row.collected or {}),
        derived=dict(row.derived or {}),
        quote=row.quote,
        scheduling=row.scheduling,
        handoff=row.handoff,
        audit=dict(row.audit or {}),
    )


def _apply_state(row: SmsSession, state: SessionState) -> None:
    data = state.model_dump(mode="json")
    row.account_id = data["account_id"]
    row.to_phone = data["to_phone"]
    row.status = data["status"]
    row.service_template_id = data["service_template_id"]
    row.state = data["state"]
    row.current_field = data["current_field"]
    row.attempt_counters = data["attempt_counters"]
    row.confidence = data["confidence"]
    row.collected = data["collected"]
    row.derived = data["derived"]
    row.quote = data["quote"]
    row.scheduling = data["scheduling"]
    row.handoff = data["handoff"]
    row.audit = data["audit"]


async def get_session_by_phone(
    db: AsyncSession, business_id, phone: str
) -> Optional[SessionState]:
    """Load the conversation for (business, phone). None for an unseen number."""
    result = await db.execute(
        select(SmsSession).where(
            SmsSession.business_id == to_uuid(business_id, "business_id"),
            SmsSession.from_phone == phone,
        )
    )
    row = result.scalar_one_or_none()
    return row_to_state(row) if row else None


async def upsert_session(
    db: AsyncSession,
    state: SessionState,
    last_provider_message_id: Optional[str] = None,
) -> SmsSession:
    """Persist the engine's session verbatim, creating the row on first contact."""
    session_id = to_uuid(state.session_id, "session_id")
    row = await db.get(SmsSession, session_id)
    if row is None:
        row = SmsSession(
            session_id=session_id,
            business_id=to_uuid(state.business_id, "business_id"),
            from_phone=state.from_phone,
        )
        db.add(row)
    _apply_state(row, state)
    if last_provider_message_id:
        row.last_provider_message_id = last_provider_message_id
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return row


async def event_exists(db: AsyncSession, event_id: Optional[str]) -> bool:
    """Durable idempotency check on the unique sms_events.event_id."""
    if not event_id:
        return False
    result = await db.execute(select(SmsEvent.id).where(SmsEvent.event_id == event_id))
    return result.first() is not None


async def append_event(db: AsyncSession, event: SmsEvent) -> SmsEvent:
    """Append one message to the conversation log. Events are never updated here."""
    db.add(event)
    await db.flush()
    return event


async def create_handoff_ticket(db: AsyncSession, ticket: HandoffTicket) -> HandoffTicket:
    db.add(ticket)
    await db.flush()
    logger.info(
        "Handoff ticket %s created for session %s (priority=%s)",
        str(ticket.ticket_id)[:8], str(ticket.session_id)[:8], ticket.priority,
    )
    return ticket


async def create_callback_token(db: AsyncSession, token: ClickToCallToken) -> ClickToCallToken:
    db.add(token)
    await db.flush()
    return token


async def resolve_callback_token(
    db: AsyncSession, token: str, now: Optional[datetime] = None
) -> ClickToCallToken:
    """
    Look up a click-to-call token. Expiry is checked here, on read;
    nothing sweeps expired rows. The first successful resolve stamps used_at.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(select(ClickToCallToken).where(ClickToCallToken.token == token))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError("Unknown click-to-call token", code="token_not_found")
    if row.is_expired(now):
        raise TokenExpiredError()
    if row.used_at is None:
        row.used_at = now
        await db.flush()
    return row
