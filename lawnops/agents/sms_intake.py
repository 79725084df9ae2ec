"""
SMS Intake Engine - deterministic state machine for one customer conversation.

State machine:
  INTENT → COLLECTING(field) → ... → QUOTE_READY → SCHEDULING → BOOKED
  Any non-terminal state → HANDOFF (explicit request, negative sentiment,
  repeated extraction failure, declined quote, site visit needed,
  a second unresolved objection to the quote)
  BOOKED and HANDOFF are terminal.

PURE FUNCTION: handle_inbound_message(message, prior_session, ...) depends only
on its arguments. The prior session is deep-copied, the clock is the message's
received_at (required; the caller stamps it once on receipt), and every
random value (ticket ids, click-to-call tokens) is produced later by the
caller when it executes the returned actions.
Replaying the same (prior_session, message) pair returns identical output.

The caller is responsible for deduplicating by provider message id,
serialising messages per session, and persisting the returned session verbatim.
"""
import logging
import re
import uuid
from datetime import datetime
from typing import Optional

from lawnops.agents.extraction import (
    ExtractionContext,
    FieldExtractor,
    HeuristicExtractor,
    classify_objection,
    parse_choice,
    parse_yes_no,
)
from lawnops.errors import InputError, NoActiveTenantError
from lawnops.schemas.service_template import ServiceTemplate
from lawnops.schemas.sms import (
    HandoffState,
    InboundMessage,
    IntakeAction,
    IntakeResult,
    OutboundMessage,
    SchedulingState,
    SessionState,
    StateTransition,
)
from lawnops.services.compliance import is_stop_keyword
from lawnops.services.geo import MockPropertyEnricher, PropertyEnricher
from lawnops.services.handoff import build_handoff_summary, determine_priority
from lawnops.services.quote_engine import compute_lot_bucket, compute_quote
from lawnops.services.scheduling import format_slot_lines, propose_slots
from lawnops.services.service_templates import get_service_template
from lawnops.utils.logging import mask_phone
from lawnops.utils.templates import render_template

logger = logging.getLogger(__name__)

INTENT = "INTENT"
COLLECTING = "COLLECTING"
QUOTE_READY = "QUOTE_READY"
SCHEDULING = "SCHEDULING"
BOOKED = "BOOKED"
HANDOFF = "HANDOFF"

DEFAULT_TEMPLATE_ID = "lawncare_v1"
DEFAULT_MAX_ATTEMPTS = 2

# Valid state transitions (staying in the same state is always allowed
# for non-terminal states)
VALID_TRANSITIONS = {
    INTENT: [COLLECTING, QUOTE_READY, HANDOFF],
    COLLECTING: [QUOTE_READY, HANDOFF],
    QUOTE_READY: [SCHEDULING, HANDOFF],
    SCHEDULING: [BOOKED, HANDOFF],
    BOOKED: [],  # Terminal
    HANDOFF: [],  # Terminal
}
TERMINAL_STATES = {BOOKED, HANDOFF}

# Pseudo-fields for replies that are not template fields
QUOTE_CONFIRMATION = "quote_confirmation"
SLOT_CHOICE = "slot_choice"
QUOTE_OBJECTION = "quote_objection"

RESUBSCRIBE_KEYWORDS = {"start", "unstop", "resume"}

SESSION_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://lawnops/sms-session")


class InvalidTransitionError(Exception):
    """The engine tried an edge that is not in VALID_TRANSITIONS. A bug, not bad input."""
    pass


def build_session_id(business_id: str, from_phone: str) -> str:
    """Deterministic session id so a replayed first message creates the same session."""
    return str(uuid.uuid5(SESSION_NAMESPACE, f"{business_id}:{from_phone}"))


def new_session(message: InboundMessage, template_id: str) -> SessionState:
    return SessionState(
        session_id=build_session_id(message.business_id, message.from_phone),
        account_id=message.account_id,
        business_id=message.business_id,
        from_phone=message.from_phone,
        to_phone=message.to_phone,
        service_template_id=template_id,
    )


class _Turn:
    """Mutable working set for one inbound message."""

    def __init__(
        self,
        session: SessionState,
        message: InboundMessage,
        template: ServiceTemplate,
        business_name: str,
        extractor: FieldExtractor,
        enricher: PropertyEnricher,
        max_attempts: int,
        now: datetime,
        is_new: bool,
    ):
        self.session = session
        self.message = message
        self.text = message.text.strip()
        self.template = template
        self.business_name = business_name
        self.extractor = extractor
        self.enricher = enricher
        self.max_attempts = max_attempts
        self.now = now
        self.is_new = is_new
        self.outbound: list[OutboundMessage] = []
        self.actions: list[IntakeAction] = []

    @property
    def now_iso(self) -> str:
        return self.now.isoformat()

    def say(self, text: str, greet: bool = False) -> None:
        if greet and self.is_new:
            greeting = self.render(self.template.messages.greeting)
            text = f"{greeting} {text}"
        self.outbound.append(OutboundMessage(to=self.session.from_phone, text=text))

    def render(self, text: str, **extra) -> str:
        session = self.session
        values = {
            "business_name": self.business_name,
            "address": session.derived.get("address_one_line") or session.collected.get("address", ""),
            "service_label": str(session.collected.get("service", "lawn care")).replace("_", " "),
            "slot_count": self.template.slot_count,
        }
        if session.quote:
            values["display"] = session.quote.display
        if session.scheduling and session.scheduling.selected_slot:
            values["slot_label"] = session.scheduling.selected_slot.label
        values.update(extra)
        return render_template(text, **values)


def handle_inbound_message(
    message: InboundMessage,
    prior_session: Optional[SessionState],
    business_name: str,
    *,
    template: Optional[ServiceTemplate] = None,
    extractor: Optional[FieldExtractor] = None,
    enricher: Optional[PropertyEnricher] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> IntakeResult:
    """
    Process one inbound text against the prior session.

    Returns IntakeResult(session, outbound_messages, state_transition, actions).
    Raises InputError for a blank text, a missing sender or a missing
    received_at, and NoActiveTenantError when no business was resolved.
    Nothing is mutated in either case. Extraction failures are never
    raised: they reprompt, and escalate to HANDOFF after max_attempts.
    """
    if not message.from_phone or not message.from_phone.strip():
        raise InputError("Inbound message is missing from_phone", code="missing_from_phone")
    if not message.text or not message.text.strip():
        raise InputError("Inbound message text is empty", code="empty_text")
    if not message.business_id:
        raise NoActiveTenantError()
    if message.received_at is None:
        raise InputError("Inbound message has no received_at", code="missing_received_at")

    if template is None:
        template_id = prior_session.service_template_id if prior_session else DEFAULT_TEMPLATE_ID
        template = get_service_template(template_id)

    is_new = prior_session is None
    if is_new:
        session = new_session(message, template.template_id)
    else:
        session = prior_session.model_copy(deep=True)

    before_state = session.state
    before_field = session.current_field

    turn = _Turn(
        session=session,
        message=message,
        template=template,
        business_name=business_name,
        extractor=extractor or HeuristicExtractor(),
        enricher=enricher or MockPropertyEnricher(),
        max_attempts=max_attempts,
        now=message.received_at,
        is_new=is_new,
    )

    _record_inbound(turn)
    _dispatch(turn)

    transition = None
    if (session.state, session.current_field) != (before_state, before_field):
        transition = StateTransition(
            from_state=before_state,
            to_state=session.state,
            from_field=before_field,
            to_field=session.current_field,
        )
        session.audit.setdefault("transitions", []).append({
            "from": before_state,
            "to": session.state,
            "field": session.current_field,
            "at": turn.now_iso,
        })
        logger.info(
            "Session %s: %s → %s (%s)",
            session.session_id[:8], before_state, session.state, mask_phone(session.from_phone),
        )

    return IntakeResult(
        session=session,
        outbound_messages=turn.outbound,
        state_transition=transition,
        actions=turn.actions,
    )


def _record_inbound(turn: _Turn) -> None:
    audit = turn.session.audit
    if turn.is_new:
        audit["created_at"] = turn.now_iso
    audit["inbound_count"] = audit.get("inbound_count", 0) + 1
    audit["last_inbound_at"] = turn.now_iso
    if turn.message.provider_message_id:
        audit["last_provider_message_id"] = turn.message.provider_message_id


def _dispatch(turn: _Turn) -> None:
    """Route one message by session status and state. Order matters."""
    session = turn.session
    text = turn.text

    if session.status == "opted_out":
        if text.lower().strip(" .!") in RESUBSCRIBE_KEYWORDS:
            session.status = _status_for_state(session.state)
            logger.info("Session %s re-subscribed", session.session_id[:8])
        return

    if is_stop_keyword(text):
        session.status = "opted_out"
        logger.info("Session %s opted out", session.session_id[:8])
        return

    if session.state == HANDOFF:
        turn.actions.append(IntakeAction(
            type="forward_to_human",
            payload={
                "session_id": session.session_id,
                "business_id": session.business_id,
                "from_phone": session.from_phone,
                "text": text,
            },
        ))
        return

    if session.state == BOOKED:
        turn.say(turn.render(turn.template.messages.booked_ack))
        return

    policy = turn.template.handoff_policy
    if _matches_any(policy.human_request_patterns, text):
        _enter_handoff(turn, ["explicit_request"])
        return
    if _matches_any(policy.negative_patterns, text):
        _enter_handoff(turn, ["negative_sentiment"])
        return

    if session.state in (INTENT, COLLECTING):
        _collect(turn)
    elif session.state == QUOTE_READY:
        _handle_quote_reply(turn)
    elif session.state == SCHEDULING:
        _handle_slot_reply(turn)
    else:
        raise InvalidTransitionError(f"Unknown session state {session.state}")


# === TRANSITIONS ===

def _transition(session: SessionState, to_state: str, to_field: Optional[str] = None) -> None:
    if to_state != session.state and to_state not in VALID_TRANSITIONS.get(session.state, []):
        raise InvalidTransitionError(f"Invalid transition {session.state} → {to_state}")
    if to_state == session.state and to_state in TERMINAL_STATES:
        raise InvalidTransitionError(f"{to_state} is terminal")
    session.state = to_state
    session.current_field = to_field


def _status_for_state(state: str) -> str:
    if state == HANDOFF:
        return "handoff"
    if state == BOOKED:
        return "completed"
    return "active"


def _matches_any(patterns: list[str], text: str) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def _record_failure(turn: _Turn, field: str) -> bool:
    """
    Count a failed attempt at `field`. Returns True when the ceiling was
    exceeded and the session went to HANDOFF.
    """
    counters = turn.session.attempt_counters
    counters[field] = counters.get(field, 0) + 1
    if counters[field] > turn.max_attempts:
        _enter_handoff(turn, [f"repeated_failure:{field}"])
        return True
    return False


def _reset_counter(session: SessionState, field: str) -> None:
    if field in session.attempt_counters:
        session.attempt_counters[field] = 0


def _reprompt_text(turn: _Turn, base: str, field: str) -> str:
    """Plain reprompt first, then a firmer one that offers a person."""
    if turn.session.attempt_counters.get(field, 0) >= 2:
        return f"{base} Or reply AGENT to talk to a person."
    return base


# === COLLECTING ===

def _focus_field(turn: _Turn) -> Optional[str]:
    session = turn.session
    if session.state == COLLECTING:
        return session.current_field
    if turn.template.field("intent") is not None:
        return "intent"
    missing = _missing_required(turn)
    return missing[0] if missing else None


def _missing_required(turn: _Turn) -> list[str]:
    return [f for f in turn.template.required_fields if f not in turn.session.collected]


def _collect(turn: _Turn) -> None:
    session = turn.session
    template = turn.template
    focus = _focus_field(turn)
    focus_spec = template.field(focus) if focus else None

    accepted = []
    for spec in template.fields:
        if spec.name in session.collected:
            continue
        context = ExtractionContext(
            expected_field=focus,
            collected=dict(session.collected),
            template_id=template.template_id,
            options=focus_spec.options if (focus_spec and spec.name == focus) else {},
        )
        extraction = turn.extractor.extract(spec.name, turn.text, context)
        if extraction.value is None or extraction.confidence < spec.confidence_threshold:
            continue
        session.collected[spec.name] = extraction.value
        session.confidence[spec.name] = round(float(extraction.confidence), 4)
        _reset_counter(session, spec.name)
        accepted.append(spec.name)

    if "address" in accepted:
        session.derived.update(turn.enricher.enrich(str(session.collected["address"])))

    if focus and focus not in session.collected:
        if turn.is_new:
            # Nothing was asked yet: greet and ask, do not count a failure
            turn.say(focus_spec.prompt if focus_spec else "", greet=True)
            return
        if _record_failure(turn, focus):
            return
        reprompt = focus_spec.reprompt if focus_spec else "Sorry, could you say that another way?"
        turn.say(_reprompt_text(turn, reprompt, focus), greet=True)
        return

    missing = _missing_required(turn)
    if not missing:
        _enter_quote_ready(turn)
        return

    next_field = missing[0]
    _transition(session, COLLECTING, next_field)
    turn.say(template.field(next_field).prompt, greet=True)


# === QUOTE_READY ===

def _enter_quote_ready(turn: _Turn) -> None:
    session = turn.session
    collected = session.collected
    derived = session.derived

    _transition(session, QUOTE_READY)

    user_bucket = collected.get("property_size")
    lot_bucket = compute_lot_bucket(derived.get("lot_acres"), user_bucket)
    service = collected.get("service")
    session.quote = compute_quote(
        turn.template,
        frequency=collected.get("frequency"),
        lot_bucket=lot_bucket,
        services=[service] if service else [],
        has_fence=collected.get("has_fence"),
        slope=collected.get("slope"),
        address_confidence=derived.get("address_confidence"),
        bucket_from_enrichment=(not user_bucket or user_bucket == "unknown") and lot_bucket != "unknown",
    )
    derived["lot_size_bucket"] = lot_bucket

    if session.quote.requires_site_visit:
        _enter_handoff(turn, ["site_visit_required"] + session.quote.site_visit_reasons)
        return

    turn.say(turn.render(turn.template.messages.quote), greet=True)


def _handle_quote_reply(turn: _Turn) -> None:
    session = turn.session
    objection = classify_objection(turn.text, turn.template.objections)
    if objection is not None:
        _handle_objection(turn, objection)
        return

    answer = parse_yes_no(turn.text)

    if answer is None:
        if _record_failure(turn, QUOTE_CONFIRMATION):
            return
        turn.say(_reprompt_text(turn, turn.render(turn.template.messages.quote_reprompt), QUOTE_CONFIRMATION))
        return

    _reset_counter(session, QUOTE_CONFIRMATION)
    session.quote.accepted = answer
    if not answer:
        _enter_handoff(turn, ["quote_declined"])
        return

    slots = propose_slots(turn.now, turn.template.slot_count)
    session.scheduling = SchedulingState(proposed_slots=slots, proposed_at=turn.now_iso)
    _transition(session, SCHEDULING)
    turn.say(turn.render(turn.template.messages.slots, slot_lines=format_slot_lines(slots)))


def _handle_objection(turn: _Turn, kind: str) -> None:
    """
    Price or timing pushback gets the template's scripted answer and the
    quote stays open. When the unresolved objections reach the policy's
    escalate_after, a person takes over.
    """
    session = turn.session
    policy = turn.template.objections[kind]
    counters = session.attempt_counters
    counters[QUOTE_OBJECTION] = counters.get(QUOTE_OBJECTION, 0) + 1
    session.derived["objection_type"] = kind

    if counters[QUOTE_OBJECTION] >= policy.escalate_after:
        _enter_handoff(turn, ["objection_escalation", f"objection:{kind}"])
        return

    logger.info("Quote objection (%s) for %s", kind, mask_phone(session.from_phone))
    turn.say(turn.render(policy.response))


# === SCHEDULING ===

def _handle_slot_reply(turn: _Turn) -> None:
    session = turn.session
    slots = session.scheduling.proposed_slots if session.scheduling else []
    choice = parse_choice(turn.text, len(slots))

    if choice is None:
        if _record_failure(turn, SLOT_CHOICE):
            return
        turn.say(_reprompt_text(turn, turn.render(turn.template.messages.slot_reprompt), SLOT_CHOICE))
        return

    _reset_counter(session, SLOT_CHOICE)
    slot = slots[choice]
    session.scheduling.selected_slot = slot
    session.scheduling.booked_at = turn.now_iso
    _transition(session, BOOKED)
    session.status = "completed"

    turn.actions.append(IntakeAction(type="create_job_request", payload=_job_request_payload(turn)))
    turn.say(turn.render(turn.template.messages.booked))


def _job_request_payload(turn: _Turn) -> dict:
    session = turn.session
    collected = session.collected
    derived = session.derived
    quote = session.quote
    slot = session.scheduling.selected_slot
    service = collected.get("service")
    dispatch = turn.template.dispatch
    bucket = derived.get("lot_size_bucket", "unknown")

    services = [service] if service else []
    skills = sorted({s for svc in services for s in dispatch.skills_by_service.get(svc, [])})
    equipment = sorted({e for svc in services for e in dispatch.equipment_by_service.get(svc, [])})
    labor = dispatch.labor_minutes_by_bucket.get(bucket) or dispatch.labor_minutes_by_bucket.get("unknown") or [60, 60]

    lot_acres = derived.get("lot_acres")
    lot_sqft = int(lot_acres * 43560) if lot_acres is not None else dispatch.lot_sqft_by_bucket.get(bucket)

    return {
        "session_id": session.session_id,
        "business_id": session.business_id,
        "customer_phone": session.from_phone,
        "address": derived.get("address_one_line") or collected.get("address"),
        "zip_code": derived.get("zip"),
        "lat": derived.get("lat"),
        "lng": derived.get("lng"),
        "services": services,
        "frequency": collected.get("frequency"),
        "required_skills": skills,
        "required_equipment": equipment,
        "crew_size_min": dispatch.crew_size_min,
        "labor_low_minutes": int(labor[0]),
        "labor_high_minutes": int(labor[1]),
        "lot_area_sqft": lot_sqft,
        "price_low_usd": quote.range_low if quote else None,
        "price_high_usd": quote.range_high if quote else None,
        "requires_site_visit": bool(quote and quote.requires_site_visit),
        "preferred_date": slot.date,
        "preferred_window": {"start": slot.start, "end": slot.end},
    }


# === HANDOFF ===

def _enter_handoff(turn: _Turn, reason_codes: list[str]) -> None:
    session = turn.session
    template = turn.template
    state_at_handoff = session.state
    priority = determine_priority(reason_codes, session)
    summary = build_handoff_summary(session, reason_codes)

    _transition(session, HANDOFF)
    session.status = "handoff"
    session.handoff = HandoffState(
        reason_codes=reason_codes,
        priority=priority,
        summary=summary,
        requested_at=turn.now_iso,
        state_at_handoff=state_at_handoff,
    )

    turn.actions.append(IntakeAction(
        type="create_handoff_ticket",
        payload={
            "session_id": session.session_id,
            "business_id": session.business_id,
            "account_id": session.account_id,
            "reason_codes": list(reason_codes),
            "priority": priority,
            "summary": summary,
        },
    ))
    if template.handoff_policy.offer_click_to_call:
        turn.actions.append(IntakeAction(
            type="generate_click_to_call_token",
            payload={
                "session_id": session.session_id,
                "business_id": session.business_id,
                "to": session.from_phone,
                "ttl_minutes": template.handoff_policy.click_to_call_ttl_minutes,
                "message_template": template.messages.click_to_call,
            },
        ))

    logger.warning(
        "Session %s handed off: %s (priority=%s)",
        session.session_id[:8], ",".join(reason_codes), priority,
    )
    turn.say(turn.render(template.messages.handoff))
