"""
Dispatch schemas - value types for eligibility, scoring and feasibility.
The scoring functions work on these, never on ORM rows; the crew repository
builds them from the database.
"""
from datetime import date
from typing import Literal, Optional
from pydantic import BaseModel, Field


class ZoneSpec(BaseModel):
    zone_id: int
    name: str = ""
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_miles: Optional[float] = None

    @property
    def has_bbox(self) -> bool:
        return None not in (self.min_lat, self.max_lat, self.min_lng, self.max_lng)

    @property
    def has_circle(self) -> bool:
        return None not in (self.center_lat, self.center_lng, self.radius_miles)


class DayWindow(BaseModel):
    start: str = "07:00"  # HH:MM
    end: str = "17:00"


class TimeOffRange(BaseModel):
    start_date: date
    end_date: date  # inclusive
    reason: Optional[str] = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class CrewProfile(BaseModel):
    """Everything the engine knows about one crew."""
    crew_id: int
    name: str = ""
    skills: list[str] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    member_count: int = 2
    home_base_lat: Optional[float] = None
    home_base_lng: Optional[float] = None
    service_radius_miles: float = 20.0
    daily_capacity_minutes: int = 480
    labor_cost_per_hour: Optional[float] = None
    # weekday key ("mon".."sun") -> window; empty means the default work week
    availability: dict[str, DayWindow] = Field(default_factory=dict)
    zones: list[ZoneSpec] = Field(default_factory=list)
    time_off: list[TimeOffRange] = Field(default_factory=list)
    is_active: bool = True


class JobSpec(BaseModel):
    """A job request as the dispatch engine sees it."""
    job_id: str
    business_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    zip_code: Optional[str] = None
    services: list[str] = Field(default_factory=list)
    frequency: Optional[str] = None
    required_skills: list[str] = Field(default_factory=list)
    required_equipment: list[str] = Field(default_factory=list)
    crew_size_min: int = 1
    labor_low_minutes: int = 60
    labor_high_minutes: int = 60
    lot_area_sqft: Optional[int] = None
    price_low_usd: Optional[float] = None
    price_high_usd: Optional[float] = None
    preferred_date: Optional[date] = None

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None


class EligibilityThresholds(BaseModel):
    skill_match_min_pct: float = Field(default=100.0, ge=0.0, le=100.0)
    equipment_match_min_pct: float = Field(default=100.0, ge=0.0, le=100.0)


class EligibleCrew(BaseModel):
    """Evaluation of one crew against one job, kept even when excluded."""
    crew_id: int
    crew_name: str = ""
    eligible: bool
    skill_coverage: float
    equipment_coverage: float
    skill_match_pct: float
    equipment_match_pct: float
    missing_skills: list[str] = Field(default_factory=list)
    missing_equipment: list[str] = Field(default_factory=list)
    in_zone: bool = False
    matched_zone_id: Optional[int] = None
    within_service_radius: bool = False
    distance_miles: Optional[float] = None
    crew_size_ok: bool = True
    exclusion_reasons: list[str] = Field(default_factory=list)


class ScheduledStop(BaseModel):
    start_minute: int
    duration_minutes: int
    lat: Optional[float] = None
    lng: Optional[float] = None

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


class DayLoad(BaseModel):
    """A crew's existing booked work on one date."""
    crew_id: int
    day: date
    stops: list[ScheduledStop] = Field(default_factory=list)

    @property
    def booked_minutes(self) -> int:
        return sum(s.duration_minutes for s in self.stops)

    @property
    def last_stop(self) -> Optional[ScheduledStop]:
        if not self.stops:
            return None
        return max(self.stops, key=lambda s: (s.end_minute, s.start_minute))

    @property
    def last_end_minute(self) -> Optional[int]:
        last = self.last_stop
        return last.end_minute if last else None


class FeasibilityResult(BaseModel):
    feasible: bool
    reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    required_minutes: int = 0
    existing_load_minutes: int = 0
    remaining_capacity_minutes: int = 0
    proposed_start_minute: Optional[int] = None
    proposed_end_minute: Optional[int] = None


class MarginResult(BaseModel):
    margin_score: float
    margin_risk: Literal["low", "medium", "high"]
    labor_minutes: float
    travel_minutes: float
    burn_minutes: float
    labor_cost_usd: float
    equipment_cost_usd: float
    total_cost_usd: float
    revenue_usd: Optional[float] = None
    revenue_source: Literal["price_range", "lot_size", "none"] = "none"
    profit_usd: Optional[float] = None
    profit_margin: Optional[float] = None
    labor_range_ratio: float = 0.0
