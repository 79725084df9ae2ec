"""
Simulation schemas - config, one ranked candidate, and the run result.
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

from lawnops.schemas.dispatch import EligibilityThresholds, EligibleCrew, FeasibilityResult

RISK_PENALTIES = {"low": 0.0, "medium": 15.0, "high": 30.0}


class SimulationConfig(BaseModel):
    date_range_days: int = Field(default=7, ge=1, le=60)
    skill_match_min_pct: float = Field(default=100.0, ge=0.0, le=100.0)
    equipment_match_min_pct: float = Field(default=100.0, ge=0.0, le=100.0)
    persist_top_n: int = Field(default=10, ge=1)
    return_top_n: int = Field(default=3, ge=1)
    # Pins "today" so runs are reproducible; defaults to the current date
    start_date: Optional[date] = None
    travel_weight: float = 2.0
    margin_weight: float = 1.0
    average_speed_mph: float = 30.0
    # Charged when a crew has no origin to measure from, so an unmeasured
    # crew never outranks a nearby measured one
    unknown_travel_minutes: float = Field(default=30.0, ge=0.0)
    labor_cost_per_hour_usd: float = 30.0

    @property
    def thresholds(self) -> EligibilityThresholds:
        return EligibilityThresholds(
            skill_match_min_pct=self.skill_match_min_pct,
            equipment_match_min_pct=self.equipment_match_min_pct,
        )

    @classmethod
    def from_settings(cls, settings, **overrides) -> "SimulationConfig":
        values = {
            "date_range_days": settings.simulation_date_range_days,
            "skill_match_min_pct": settings.skill_match_min_pct,
            "equipment_match_min_pct": settings.equipment_match_min_pct,
            "persist_top_n": settings.simulation_persist_top_n,
            "return_top_n": settings.simulation_return_top_n,
            "average_speed_mph": settings.travel_average_speed_mph,
            "unknown_travel_minutes": settings.travel_unknown_minutes,
            "labor_cost_per_hour_usd": settings.labor_cost_per_hour_usd,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class SimulationCandidate(BaseModel):
    simulation_id: Optional[str] = None
    crew_id: int
    crew_name: str = ""
    proposed_date: date
    proposed_start_minute: Optional[int] = None
    rank: int = 0
    travel_minutes: float
    margin_score: float
    margin_risk: str
    risk_score: float
    composite_score: float
    remaining_capacity_minutes: int
    feasibility: FeasibilityResult
    explanation: dict = Field(default_factory=dict)


class SimulationResult(BaseModel):
    simulation_run_id: Optional[str] = None
    job_request_id: str
    simulations: list[SimulationCandidate] = Field(default_factory=list)
    eligible_crews: list[EligibleCrew] = Field(default_factory=list)
    excluded_crews: list[EligibleCrew] = Field(default_factory=list)
    thresholds_used: EligibilityThresholds
    dates_considered: list[date] = Field(default_factory=list)
    candidates_generated: int = 0
    candidates_persisted: int = 0
