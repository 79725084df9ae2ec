"""
Write-back request model - an approved assignment waiting to be posted to the
external scheduling system. Drained by the writeback_sync worker, never in the
approval request path.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base


class WritebackRequest(Base):
    __tablename__ = "writeback_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    business_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    decision_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assignment_decisions.id"), nullable=False, unique=True
    )
    job_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("job_requests.id"), nullable=False
    )
    jobber_account_id: Mapped[Optional[str]] = mapped_column(String(100))
    external_job_id: Mapped[Optional[str]] = mapped_column(String(100))
    payload: Mapped[dict] = mapped_column(JSONB, default=dict)

    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False
    )  # pending, retrying, sent, failed
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    next_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_writeback_requests_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<WritebackRequest decision={str(self.decision_id)[:8]} status={self.status}>"
