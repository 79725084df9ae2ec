"""
Event log model - audit trail for intake, dispatch and decision actions.
Used for debugging, handoff review and decision audits.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base


class EventLog(Base):
    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    session_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    job_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    decision_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    action: Mapped[str] = mapped_column(
        String(100), nullable=False
    )  # sms_processed, handoff_created, simulation_run, decision_created, decision_approved, ...
    status: Mapped[str] = mapped_column(String(20), default="success")  # success, failure, skipped
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)

    message: Mapped[Optional[str]] = mapped_column(Text)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    data: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_events_business_id", "business_id"),
        Index("ix_events_action", "action"),
        Index("ix_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.action} status={self.status}>"
