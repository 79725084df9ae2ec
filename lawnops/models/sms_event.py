"""
SMS event model - append-only log of every inbound and outbound message.
Write-once. Ordering by created_at reconstructs the conversation.
The unique event_id is the durable idempotency key for inbound deliveries.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base


class SmsEvent(Base):
    __tablename__ = "sms_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    event_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    session_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    direction: Mapped[str] = mapped_column(String(10), nullable=False)  # inbound, outbound
    from_phone: Mapped[Optional[str]] = mapped_column(String(20))
    to_phone: Mapped[Optional[str]] = mapped_column(String(20))
    text: Mapped[str] = mapped_column(Text, nullable=False)
    provider_payload: Mapped[Optional[dict]] = mapped_column(JSONB)

    state_before: Mapped[Optional[str]] = mapped_column(String(30))
    state_after: Mapped[Optional[str]] = mapped_column(String(30))

    # Outbound delivery tracking
    provider_sid: Mapped[Optional[str]] = mapped_column(String(64))
    delivery_status: Mapped[Optional[str]] = mapped_column(
        String(20)
    )  # received, queued, sent, failed
    error_code: Mapped[Optional[str]] = mapped_column(String(20))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_sms_events_session_created", "session_id", "created_at"),
        Index("ix_sms_events_provider_sid", "provider_sid"),
    )

    def __repr__(self) -> str:
        return f"<SmsEvent {self.direction} {self.event_id}>"
