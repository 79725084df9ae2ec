"""
Handoff endpoints - the operator's ticket queue and the click-to-call link.

- GET   /api/v1/handoff/tickets        open/assigned tickets, high priority first
- PATCH /api/v1/handoff/tickets/{id}   status and assignee only
- GET   /c/{token}                     customer taps the link; redirect to a tel: URL
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.api.auth import get_current_user
from lawnops.database import get_db
from lawnops.models.business import Business
from lawnops.models.event_log import EventLog
from lawnops.models.handoff_ticket import TICKET_STATUSES, HandoffTicket
from lawnops.models.sms_session import SmsSession
from lawnops.models.user import User
from lawnops.schemas.api_responses import (
    HandoffTicketListResponse,
    HandoffTicketSummary,
    HandoffTicketUpdate,
)
from lawnops.services.session_store import resolve_callback_token
from lawnops.utils.logging import mask_phone

logger = logging.getLogger(__name__)
router = APIRouter(tags=["handoff"])

_PRIORITY_ORDER = case(
    (HandoffTicket.priority == "high", 0),
    (HandoffTicket.priority == "normal", 1),
    else_=2,
)


def _to_summary(ticket: HandoffTicket, phone: Optional[str]) -> HandoffTicketSummary:
    return HandoffTicketSummary(
        ticket_id=str(ticket.ticket_id),
        session_id=str(ticket.session_id),
        status=ticket.status,
        priority=ticket.priority,
        reason_codes=list(ticket.reason_codes or []),
        summary=ticket.summary or "",
        customer_phone_masked=mask_phone(phone) or None,
        assigned_to_user_id=str(ticket.assigned_to_user_id) if ticket.assigned_to_user_id else None,
        created_at=ticket.created_at,
        closed_at=ticket.closed_at,
    )


@router.get("/api/v1/handoff/tickets", response_model=HandoffTicketListResponse)
async def list_tickets(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Tickets for the operator's business. Closed tickets only when asked for."""
    if status is not None and status not in TICKET_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    filters = [HandoffTicket.business_id == user.business_id]
    if status:
        filters.append(HandoffTicket.status == status)
    else:
        filters.append(HandoffTicket.status != "closed")

    total = (await db.execute(select(func.count()).select_from(HandoffTicket).where(*filters))).scalar()
    result = await db.execute(
        select(HandoffTicket, SmsSession.from_phone)
        .join(SmsSession, SmsSession.session_id == HandoffTicket.session_id, isouter=True)
        .where(*filters)
        .order_by(_PRIORITY_ORDER, HandoffTicket.created_at)
        .limit(limit)
    )
    tickets = [_to_summary(ticket, phone) for ticket, phone in result.all()]
    return HandoffTicketListResponse(tickets=tickets, total=total or 0)


@router.patch("/api/v1/handoff/tickets/{ticket_id}", response_model=HandoffTicketSummary)
async def update_ticket(
    ticket_id: str,
    payload: HandoffTicketUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        ticket_uuid = uuid.UUID(ticket_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid ticket id")

    ticket = await db.get(HandoffTicket, ticket_uuid)
    if ticket is None or ticket.business_id != user.business_id:
        raise HTTPException(status_code=404, detail="Ticket not found")

    if payload.assigned_to_user_id is not None:
        try:
            assignee_uuid = uuid.UUID(payload.assigned_to_user_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid assignee id")
        assignee = await db.get(User, assignee_uuid)
        if assignee is None or assignee.business_id != user.business_id:
            raise HTTPException(status_code=404, detail="Assignee not found")
        ticket.assigned_to_user_id = assignee.id
        if ticket.status == "open" and payload.status is None:
            ticket.status = "assigned"

    if payload.status is not None and payload.status != ticket.status:
        ticket.status = payload.status
        ticket.closed_at = datetime.now(timezone.utc) if payload.status == "closed" else None

    db.add(EventLog(
        business_id=ticket.business_id,
        session_id=ticket.session_id,
        user_id=user.id,
        action="handoff_updated",
        data={"ticket_id": str(ticket.ticket_id), "status": ticket.status},
    ))
    await db.commit()

    session = await db.get(SmsSession, ticket.session_id)
    return _to_summary(ticket, session.from_phone if session else None)


@router.get("/c/{token}")
async def click_to_call(token: str, db: AsyncSession = Depends(get_db)):
    """
    Resolve a click-to-call token to the business's call number.
    Unknown token → 404, expired → 410.
    """
    row = await resolve_callback_token(db, token)
    business = await db.get(Business, row.business_id)
    number = (business.call_phone or business.sms_phone) if business else None
    if not number:
        raise HTTPException(status_code=404, detail="No call number configured")

    db.add(EventLog(
        business_id=row.business_id,
        session_id=row.session_id,
        action="click_to_call_resolved",
    ))
    await db.commit()
    return RedirectResponse(url=f"tel:{number}", status_code=302)
