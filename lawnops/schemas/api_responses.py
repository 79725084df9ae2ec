"""
API request/response schemas for the webhook, handoff and dispatch endpoints.
"""
from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    status: str
    session_id: Optional[str] = None
    state: Optional[str] = None
    message: Optional[str] = None


class HandoffTicketSummary(BaseModel):
    ticket_id: str
    session_id: str
    status: str
    priority: str
    reason_codes: list[str] = Field(default_factory=list)
    summary: str = ""
    customer_phone_masked: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    created_at: datetime
    closed_at: Optional[datetime] = None


class HandoffTicketListResponse(BaseModel):
    tickets: list[HandoffTicketSummary]
    total: int


class HandoffTicketUpdate(BaseModel):
    """Operators may only move status and assignee."""
    status: Optional[Literal["open", "assigned", "closed"]] = None
    assigned_to_user_id: Optional[str] = None


class SimulateRequest(BaseModel):
    date_range_days: Optional[int] = Field(default=None, ge=1, le=60)
    start_date: Optional[date] = None
    skill_match_min_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    equipment_match_min_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    return_top_n: Optional[int] = Field(default=None, ge=1)


class CreateDecisionRequest(BaseModel):
    job_request_id: str
    simulation_id: str


class RejectDecisionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class DecisionResponse(BaseModel):
    decision_id: str
    job_request_id: str
    simulation_id: str
    status: str
    created_by_user_id: str
    approved_by_user_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by_user_id: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    reasoning: dict
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "DecisionResponse":
        return cls(
            decision_id=str(row.id),
            job_request_id=str(row.job_request_id),
            simulation_id=str(row.simulation_id),
            status=row.status,
            created_by_user_id=str(row.created_by_user_id),
            approved_by_user_id=str(row.approved_by_user_id) if row.approved_by_user_id else None,
            approved_at=row.approved_at,
            rejected_by_user_id=str(row.rejected_by_user_id) if row.rejected_by_user_id else None,
            rejected_at=row.rejected_at,
            rejection_reason=row.rejection_reason,
            reasoning=row.reasoning_json or {},
            created_at=row.created_at,
        )
