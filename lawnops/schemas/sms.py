"""
SMS intake schemas - the engine's input, persisted session value, and result.
The engine works on these value types only; the session store maps them to rows.
"""
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """One inbound customer text, already authenticated by the webhook."""
    account_id: Optional[str] = None
    business_id: Optional[str] = None
    from_phone: Optional[str] = None
    to_phone: Optional[str] = None
    text: Optional[str] = None
    provider_message_id: Optional[str] = None
    provider_payload: Optional[dict] = None
    received_at: Optional[datetime] = Field(
        default=None, description="Clock used by the engine; stamped once on receipt so replays match"
    )


class QuoteResult(BaseModel):
    """Quote computed on entering QUOTE_READY. Typed flags, never free-text notes."""
    range_low: float
    range_high: float
    exact_amount: Optional[float] = None
    display: str
    lot_size_bucket: str = "unknown"
    frequency: str = "one_time"
    services: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    requires_site_visit: bool = False
    site_visit_reasons: list[str] = Field(default_factory=list)
    accepted: Optional[bool] = None


class SlotProposal(BaseModel):
    date: str  # ISO date
    start: str  # HH:MM
    end: str  # HH:MM
    label: str


class SchedulingState(BaseModel):
    proposed_slots: list[SlotProposal] = Field(default_factory=list)
    selected_slot: Optional[SlotProposal] = None
    proposed_at: Optional[str] = None
    booked_at: Optional[str] = None


class HandoffState(BaseModel):
    reason_codes: list[str] = Field(default_factory=list)
    priority: Literal["low", "normal", "high"] = "normal"
    summary: str = ""
    requested_at: Optional[str] = None
    state_at_handoff: Optional[str] = None


class SessionState(BaseModel):
    """Complete persisted state of one SMS conversation."""
    session_id: str
    account_id: Optional[str] = None
    business_id: str
    from_phone: str
    to_phone: Optional[str] = None
    status: Literal["active", "completed", "handoff", "opted_out"] = "active"
    service_template_id: str = "lawncare_v1"
    state: str = "INTENT"
    current_field: Optional[str] = None
    attempt_counters: dict[str, int] = Field(default_factory=dict)
    confidence: dict[str, float] = Field(default_factory=dict)
    collected: dict[str, Any] = Field(default_factory=dict)
    derived: dict[str, Any] = Field(default_factory=dict)
    quote: Optional[QuoteResult] = None
    scheduling: Optional[SchedulingState] = None
    handoff: Optional[HandoffState] = None
    audit: dict[str, Any] = Field(default_factory=dict)


class OutboundMessage(BaseModel):
    to: str
    text: str


class IntakeAction(BaseModel):
    type: Literal[
        "create_handoff_ticket",
        "generate_click_to_call_token",
        "create_job_request",
        "forward_to_human",
    ]
    payload: dict[str, Any] = Field(default_factory=dict)


class StateTransition(BaseModel):
    from_state: str
    to_state: str
    from_field: Optional[str] = None
    to_field: Optional[str] = None


class IntakeResult(BaseModel):
    session: SessionState
    outbound_messages: list[OutboundMessage] = Field(default_factory=list)
    state_transition: Optional[StateTransition] = None
    actions: list[IntakeAction] = Field(default_factory=list)
