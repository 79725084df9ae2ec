"""
Assignment simulation model - persisted top-N candidates of one ranking run.
Rows of earlier runs stay for audit with is_current=False.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Float, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base


class AssignmentSimulation(Base):
    __tablename__ = "assignment_simulations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    business_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    job_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("job_requests.id"), nullable=False
    )
    crew_id: Mapped[int] = mapped_column(Integer, ForeignKey("crews.id"), nullable=False)
    simulation_run_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)

    proposed_date: Mapped[date] = mapped_column(Date, nullable=False)
    proposed_start_minute: Mapped[Optional[int]] = mapped_column(Integer)

    # Scores
    travel_minutes: Mapped[float] = mapped_column(Float, default=0.0)
    margin_score: Mapped[float] = mapped_column(Float, default=0.0)
    margin_risk: Mapped[str] = mapped_column(String(10), default="low")
    risk_score: Mapped[float] = mapped_column(Float, default=0.0)
    composite_score: Mapped[float] = mapped_column(Float, default=0.0)
    remaining_capacity_minutes: Mapped[int] = mapped_column(Integer, default=0)

    feasibility: Mapped[dict] = mapped_column(JSONB, default=dict)
    explanation: Mapped[dict] = mapped_column(JSONB, default=dict)

    is_current: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_assignment_simulations_job_current", "job_request_id", "is_current"),
        Index("ix_assignment_simulations_run", "simulation_run_id"),
    )

    def __repr__(self) -> str:
        return f"<AssignmentSimulation job={str(self.job_request_id)[:8]} crew={self.crew_id} rank={self.rank}>"
