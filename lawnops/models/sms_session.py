"""
SMS session model - one per (business, customer phone).
Persisted verbatim from the intake engine's output; no other component writes it.

State machine (see lawnops.agents.sms_intake):
  INTENT → COLLECTING(field) → ... → QUOTE_READY → SCHEDULING → BOOKED
  Any non-terminal state → HANDOFF
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base


class SmsSession(Base):
    __tablename__ = "sms_sessions"

    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True
    )
    account_id: Mapped[Optional[str]] = mapped_column(String(64))
    business_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    from_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    to_phone: Mapped[Optional[str]] = mapped_column(String(20))

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), default="active", nullable=False
    )  # active, completed, handoff, opted_out
    service_template_id: Mapped[str] = mapped_column(String(50), default="lawncare_v1")
    state: Mapped[str] = mapped_column(String(30), default="INTENT", nullable=False)
    current_field: Mapped[Optional[str]] = mapped_column(String(50))

    # Collection tracking
    attempt_counters: Mapped[dict] = mapped_column(JSONB, default=dict)
    confidence: Mapped[dict] = mapped_column(JSONB, default=dict)
    collected: Mapped[dict] = mapped_column(JSONB, default=dict)
    derived: Mapped[dict] = mapped_column(JSONB, default=dict)

    # Stage outputs
    quote: Mapped[Optional[dict]] = mapped_column(JSONB)
    scheduling: Mapped[Optional[dict]] = mapped_column(JSONB)
    handoff: Mapped[Optional[dict]] = mapped_column(JSONB)
    audit: Mapped[dict] = mapped_column(JSONB, default=dict)

    last_provider_message_id: Mapped[Optional[str]] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("business_id", "from_phone", name="uq_sms_sessions_business_phone"),
        Index("ix_sms_sessions_status", "status"),
        Index("ix_sms_sessions_state", "state"),
    )

    def __repr__(self) -> str:
        return f"<SmsSession {str(self.session_id)[:8]} state={self.state} status={self.status}>"
