"""
Business model - the tenant. Every session, crew, job and decision belongs to one.
Inbound SMS are routed to a business by the number they were sent to.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawnops.database import Base


class Business(Base):
    __tablename__ = "businesses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Messaging
    sms_phone: Mapped[Optional[str]] = mapped_column(String(20), unique=True)
    call_phone: Mapped[Optional[str]] = mapped_column(String(20))
    messaging_service_sid: Mapped[Optional[str]] = mapped_column(String(64))
    service_template_id: Mapped[str] = mapped_column(String(50), default="lawncare_v1")

    timezone: Mapped[str] = mapped_column(String(50), default="America/Chicago")

    # External scheduling system
    jobber_account_id: Mapped[Optional[str]] = mapped_column(String(100))

    settings: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_businesses_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Business {self.name}>"
