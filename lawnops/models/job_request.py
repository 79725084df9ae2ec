"""
Job request model - work to be assigned to a crew.
Created from intake (SMS, web, call).

Lifecycle:
  new → simulated → decided → assigned → completed
  decided → needs_resimulation (decision rejected) → simulated → ...
  simulated → needs_resimulation (a re-run found no candidates)
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, Float, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base

# Allowed status moves. The dispatch engine only ever moves a job forward,
# except a rejected decision or an empty re-run, which send it back for
# re-simulation.
JOB_TRANSITIONS = {
    "new": ["simulated"],
    "simulated": ["simulated", "decided", "needs_resimulation"],
    "needs_resimulation": ["simulated"],
    "decided": ["assigned", "needs_resimulation"],
    "assigned": ["completed"],
    "completed": [],
}

SIMULATABLE_STATUSES = ("new", "simulated", "needs_resimulation")


class JobRequest(Base):
    __tablename__ = "job_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False
    )

    # Customer
    customer_name: Mapped[Optional[str]] = mapped_column(String(200))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20))
    address: Mapped[Optional[str]] = mapped_column(Text)
    zip_code: Mapped[Optional[str]] = mapped_column(String(10))
    lat: Mapped[Optional[float]] = mapped_column(Float)
    lng: Mapped[Optional[float]] = mapped_column(Float)

    # Work
    services: Mapped[list] = mapped_column(JSONB, default=list)
    frequency: Mapped[Optional[str]] = mapped_column(String(20))
    required_skills: Mapped[list] = mapped_column(JSONB, default=list)
    required_equipment: Mapped[list] = mapped_column(JSONB, default=list)
    crew_size_min: Mapped[int] = mapped_column(Integer, default=1)
    labor_low_minutes: Mapped[int] = mapped_column(Integer, default=60)
    labor_high_minutes: Mapped[int] = mapped_column(Integer, default=60)
    lot_area_sqft: Mapped[Optional[int]] = mapped_column(Integer)

    # Quote (typed, never parsed out of notes)
    price_low_usd: Mapped[Optional[float]] = mapped_column(Float)
    price_high_usd: Mapped[Optional[float]] = mapped_column(Float)
    requires_site_visit: Mapped[bool] = mapped_column(Boolean, default=False)
    needs_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Origin
    source: Mapped[str] = mapped_column(String(20), default="sms")  # sms, web, call
    sms_session_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    preferred_date: Mapped[Optional[date]] = mapped_column(Date)

    # Dispatch
    status: Mapped[str] = mapped_column(String(30), default="new", nullable=False)
    assigned_crew_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("crews.id"))
    assigned_date: Mapped[Optional[date]] = mapped_column(Date)
    external_job_id: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_job_requests_business_status", "business_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<JobRequest {str(self.id)[:8]} status={self.status}>"
