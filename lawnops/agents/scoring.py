"""
Travel / Margin Scorer - cost of inserting one job into one crew's day.

Travel is a straight-line estimate (see HaversineTravelEstimator): good for
comparing crews, not for promising arrival times. Margin compares estimated
revenue to labor, travel and equipment cost. Feasibility checks the crew's
availability window, time off and remaining daily capacity.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from lawnops.schemas.dispatch import (
    CrewProfile,
    DayLoad,
    DayWindow,
    FeasibilityResult,
    JobSpec,
    MarginResult,
    ScheduledStop,
)
from lawnops.services.geo import HaversineTravelEstimator, TravelEstimator
from lawnops.services.scheduling import to_minutes, weekday_key

logger = logging.getLogger(__name__)

DEFAULT_LABOR_MINUTES = 60
MAX_BURN_MINUTES_FOR_SCORE = 480

# Padding on the high labor estimate when checking capacity
LABOR_BUFFER_PCT = 0.15

# Work week used when a crew has no availability configured
DEFAULT_AVAILABILITY = {
    day: DayWindow(start="07:00", end="17:00") for day in ("mon", "tue", "wed", "thu", "fri")
}

LARGE_LOT_SQFT = 43560
HIGH_VARIANCE_SERVICES = ("leaf_cleanup", "mulching", "shrub_trimming")

# Warning -> risk points (capped at 100)
WARNING_RISK_POINTS = {
    "large_lot_monthly_service": 15,
    "high_variance_service": 20,
    "wide_labor_range": 10,
}


@dataclass
class CostModel:
    labor_cost_per_hour: float = 30.0
    base_rate_per_thousand_sqft: float = 45.0
    equipment_cost_per_job: dict = field(default_factory=lambda: {
        "mower_ztr": 5,
        "mower_push": 2,
        "trimmer": 1,
        "blower": 1,
        "edger": 1,
        "trailer": 3,
        "truck": 5,
        "chainsaw": 3,
        "hedge_trimmer": 2,
        "aerator": 10,
        "dethatcher": 8,
        "spreader": 3,
        "sprayer": 5,
    })


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def get_crew_to_job_travel_minutes(
    crew: CrewProfile,
    job: JobSpec,
    last_stop: Optional[ScheduledStop] = None,
    estimator: Optional[TravelEstimator] = None,
) -> Optional[float]:
    """
    Minutes from the crew's last scheduled stop of the day (or home base
    when the day is empty) to the job. None when either end has no coordinates.
    """
    if not job.has_location:
        return None
    if last_stop is not None and last_stop.lat is not None and last_stop.lng is not None:
        origin = (last_stop.lat, last_stop.lng)
    elif crew.home_base_lat is not None and crew.home_base_lng is not None:
        origin = (crew.home_base_lat, crew.home_base_lng)
    else:
        return None
    estimator = estimator or HaversineTravelEstimator()
    return estimator.estimate_travel_minutes(origin, (job.lat, job.lng))


def labor_range_ratio(job: JobSpec) -> float:
    low = job.labor_low_minutes or job.labor_high_minutes or DEFAULT_LABOR_MINUTES
    high = job.labor_high_minutes or low
    low, high = min(low, high), max(low, high)
    midpoint = (low + high) / 2
    return (high - low) / midpoint if midpoint > 0 else 0.0


def margin_risk_for(job: JobSpec) -> str:
    """A wide labor range is itself a risk: the estimate could be far off."""
    ratio = labor_range_ratio(job)
    if ratio >= 0.5:
        return "high"
    if ratio >= 0.25:
        return "medium"
    return "low"


def compute_margin_score(
    job: JobSpec,
    travel_minutes: float,
    labor_minutes_estimate: Optional[float],
    crew: CrewProfile,
    cost_model: Optional[CostModel] = None,
) -> MarginResult:
    """
    Score 0-100, higher is better margin.

    Revenue comes from the quoted price midpoint, else from lot size at the
    base rate per 1000 sqft. With neither, the score falls back to how much
    of an 8-hour day the job burns.
    """
    cost_model = cost_model or CostModel()
    if labor_minutes_estimate is None:
        low = job.labor_low_minutes or DEFAULT_LABOR_MINUTES
        high = job.labor_high_minutes or low
        labor_minutes_estimate = (low + high) / 2

    travel = max(0.0, travel_minutes or 0.0)
    burn_minutes = labor_minutes_estimate + travel
    hourly = crew.labor_cost_per_hour or cost_model.labor_cost_per_hour
    members = max(1, crew.member_count)
    labor_cost = burn_minutes / 60 * hourly * members

    equipment_cost = 0.0
    for item in job.required_equipment:
        key = item.strip().lower().replace(" ", "_")
        equipment_cost += cost_model.equipment_cost_per_job.get(key, 0)
    total_cost = labor_cost + equipment_cost

    revenue = None
    revenue_source = "none"
    prices = [p for p in (job.price_low_usd, job.price_high_usd) if p is not None and p > 0]
    if prices:
        revenue = sum(prices) / len(prices)
        revenue_source = "price_range"
    elif job.lot_area_sqft:
        revenue = job.lot_area_sqft / 1000 * cost_model.base_rate_per_thousand_sqft
        revenue_source = "lot_size"

    profit = None
    profit_margin = None
    if revenue is not None and revenue > 0:
        profit = revenue - total_cost
        profit_margin = profit / revenue
        score = _clamp((profit_margin + 0.2) * 100)
    else:
        score = _clamp(100 - burn_minutes / MAX_BURN_MINUTES_FOR_SCORE * 100)

    return MarginResult(
        margin_score=round(score, 2),
        margin_risk=margin_risk_for(job),
        labor_minutes=round(labor_minutes_estimate, 2),
        travel_minutes=round(travel, 2),
        burn_minutes=round(burn_minutes, 2),
        labor_cost_usd=round(labor_cost, 2),
        equipment_cost_usd=round(equipment_cost, 2),
        total_cost_usd=round(total_cost, 2),
        revenue_usd=round(revenue, 2) if revenue is not None else None,
        revenue_source=revenue_source,
        profit_usd=round(profit, 2) if profit is not None else None,
        profit_margin=round(profit_margin, 4) if profit_margin is not None else None,
        labor_range_ratio=round(labor_range_ratio(job), 4),
    )


def required_minutes(job: JobSpec, travel_minutes: float = 0.0) -> int:
    """High labor estimate plus buffer, plus travel, in whole minutes."""
    labor_high = job.labor_high_minutes or job.labor_low_minutes or DEFAULT_LABOR_MINUTES
    return math.ceil(labor_high * (1 + LABOR_BUFFER_PCT)) + math.ceil(max(0.0, travel_minutes or 0.0))


def _feasibility_warnings(job: JobSpec) -> list[str]:
    warnings = []
    if (job.frequency or "").lower() == "monthly" and (job.lot_area_sqft or 0) > LARGE_LOT_SQFT:
        warnings.append("large_lot_monthly_service")
    if any(s in HIGH_VARIANCE_SERVICES for s in job.services):
        warnings.append("high_variance_service")
    if labor_range_ratio(job) >= 0.5:
        warnings.append("wide_labor_range")
    return warnings


def risk_score_for(warnings: list[str]) -> float:
    return float(min(100, sum(WARNING_RISK_POINTS.get(w, 0) for w in warnings)))


def evaluate_feasibility(
    job: JobSpec,
    crew: CrewProfile,
    candidate_date: date,
    day_load: Optional[DayLoad] = None,
    travel_minutes: float = 0.0,
) -> FeasibilityResult:
    """
    Can this crew take the job on this date?

    The job is inserted at the end of the crew's day: after the last booked
    stop, or at the start of the availability window. Warnings never block.
    """
    reasons = []
    day_key = weekday_key(candidate_date)
    availability = crew.availability or DEFAULT_AVAILABILITY
    window = availability.get(day_key)

    window_start = to_minutes(window.start) if window else None
    window_end = to_minutes(window.end) if window else None
    if window is None or window_start is None or window_end is None or window_end <= window_start:
        reasons.append(f"not_available_on_{day_key}")

    if any(off.covers(candidate_date) for off in crew.time_off):
        reasons.append("time_off")

    existing = day_load.booked_minutes if day_load else 0
    needed = required_minutes(job, travel_minutes)
    remaining_before = crew.daily_capacity_minutes - existing
    if needed > remaining_before:
        reasons.append(f"capacity_exceeded:need_{needed}min_have_{max(0, remaining_before)}min")

    proposed_start = None
    proposed_end = None
    if window_start is not None and window_end is not None:
        last_end = day_load.last_end_minute if day_load else None
        proposed_start = max(window_start, last_end) if last_end is not None else window_start
        proposed_end = proposed_start + needed
        if proposed_end > window_end and f"not_available_on_{day_key}" not in reasons:
            reasons.append("outside_availability_window")

    return FeasibilityResult(
        feasible=not reasons,
        reasons=reasons,
        warnings=_feasibility_warnings(job),
        required_minutes=needed,
        existing_load_minutes=existing,
        remaining_capacity_minutes=max(0, remaining_before - needed),
        proposed_start_minute=proposed_start,
        proposed_end_minute=proposed_end,
    )
