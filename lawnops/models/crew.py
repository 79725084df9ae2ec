"""
Crew roster models - crews, service zones, zone assignments and time off.
Operator-owned reference data. The dispatch engine only reads these.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Float, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from lawnops.database import Base


class Crew(Base):
    __tablename__ = "crews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Capabilities
    skills: Mapped[list] = mapped_column(JSONB, default=list)
    equipment: Mapped[list] = mapped_column(JSONB, default=list)
    member_count: Mapped[int] = mapped_column(Integer, default=2)

    # Geography
    home_base_lat: Mapped[Optional[float]] = mapped_column(Float)
    home_base_lng: Mapped[Optional[float]] = mapped_column(Float)
    service_radius_miles: Mapped[float] = mapped_column(Float, default=20.0)

    # Capacity
    daily_capacity_minutes: Mapped[int] = mapped_column(Integer, default=480)
    labor_cost_per_hour: Mapped[Optional[float]] = mapped_column(Float)
    availability: Mapped[dict] = mapped_column(
        JSONB, default=dict
    )  # {"mon": {"start": "07:00", "end": "17:00"}, ...}

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    zone_assignments: Mapped[list["CrewZoneAssignment"]] = relationship(
        back_populates="crew", lazy="selectin"
    )
    time_off: Mapped[list["CrewTimeOff"]] = relationship(
        back_populates="crew", lazy="selectin"
    )

    __table_args__ = (
        Index("ix_crews_business_active", "business_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Crew {self.id} {self.name}>"


class ServiceZone(Base):
    __tablename__ = "service_zones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Bounding box (checked first when present)
    min_lat: Mapped[Optional[float]] = mapped_column(Float)
    max_lat: Mapped[Optional[float]] = mapped_column(Float)
    min_lng: Mapped[Optional[float]] = mapped_column(Float)
    max_lng: Mapped[Optional[float]] = mapped_column(Float)

    # Circle
    center_lat: Mapped[Optional[float]] = mapped_column(Float)
    center_lng: Mapped[Optional[float]] = mapped_column(Float)
    radius_miles: Mapped[Optional[float]] = mapped_column(Float)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<ServiceZone {self.id} {self.name}>"


class CrewZoneAssignment(Base):
    __tablename__ = "crew_zone_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crew_id: Mapped[int] = mapped_column(Integer, ForeignKey("crews.id"), nullable=False)
    zone_id: Mapped[int] = mapped_column(Integer, ForeignKey("service_zones.id"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    crew: Mapped["Crew"] = relationship(back_populates="zone_assignments")
    zone: Mapped["ServiceZone"] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_crew_zone_assignments_crew_id", "crew_id"),
    )


class CrewTimeOff(Base):
    __tablename__ = "crew_time_off"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crew_id: Mapped[int] = mapped_column(Integer, ForeignKey("crews.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)  # inclusive
    reason: Mapped[Optional[str]] = mapped_column(String(255))

    crew: Mapped["Crew"] = relationship(back_populates="time_off")

    __table_args__ = (
        Index("ix_crew_time_off_crew_dates", "crew_id", "start_date", "end_date"),
    )
