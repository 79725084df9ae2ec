"""
Tests for lawnops/agents/scoring.py - travel, margin and feasibility.
"""
from datetime import date

from factories import JOB_LAT, JOB_LNG, MONDAY
from lawnops.agents.scoring import (
    compute_margin_score,
    evaluate_feasibility,
    get_crew_to_job_travel_minutes,
    margin_risk_for,
    required_minutes,
    risk_score_for,
)
from lawnops.schemas.dispatch import CrewProfile, DayLoad, JobSpec, ScheduledStop, TimeOffRange


def _job(**overrides) -> JobSpec:
    values = {
        "job_id": "job-1",
        "lat": JOB_LAT,
        "lng": JOB_LNG,
        "services": ["mowing"],
        "frequency": "weekly",
        "required_skills": ["mowing"],
        "required_equipment": ["mower_ztr", "trimmer", "blower"],
        "labor_low_minutes": 45,
        "labor_high_minutes": 60,
        "price_low_usd": 45.0,
        "price_high_usd": 60.0,
    }
    values.update(overrides)
    return JobSpec(**values)


def _crew(**overrides) -> CrewProfile:
    values = {
        "crew_id": 1,
        "skills": ["mowing"],
        "member_count": 1,
        "home_base_lat": 30.28,
        "home_base_lng": -97.75,
        "daily_capacity_minutes": 480,
    }
    values.update(overrides)
    return CrewProfile(**values)


def _load(*stops) -> DayLoad:
    return DayLoad(
        crew_id=1,
        day=MONDAY,
        stops=[ScheduledStop(start_minute=s, duration_minutes=d) for s, d in stops],
    )


class TestTravel:
    def test_from_home_base(self):
        minutes = get_crew_to_job_travel_minutes(_crew(), _job())
        assert 0 < minutes < 5

    def test_from_last_stop(self):
        """The crew leaves from where its day ends, not from home."""
        last = ScheduledStop(start_minute=480, duration_minutes=60, lat=JOB_LAT, lng=JOB_LNG)
        assert get_crew_to_job_travel_minutes(_crew(), _job(), last_stop=last) == 0.0

    def test_unknown(self):
        assert get_crew_to_job_travel_minutes(_crew(), _job(lat=None, lng=None)) is None
        assert get_crew_to_job_travel_minutes(_crew(home_base_lat=None, home_base_lng=None), _job()) is None


class TestMarginScore:
    def test_price_range_revenue(self):
        """Midpoint labor plus travel, one crew member at $30/h, equipment $7."""
        margin = compute_margin_score(_job(), 10.0, None, _crew())
        assert margin.labor_minutes == 52.5
        assert margin.burn_minutes == 62.5
        assert margin.labor_cost_usd == 31.25
        assert margin.equipment_cost_usd == 7.0
        assert margin.total_cost_usd == 38.25
        assert margin.revenue_source == "price_range"
        assert margin.revenue_usd == 52.5
        assert margin.profit_usd == 14.25
        assert margin.profit_margin == 0.2714
        assert margin.margin_score == 47.14

    def test_lot_size_revenue(self):
        margin = compute_margin_score(_job(price_low_usd=None, price_high_usd=None, lot_area_sqft=10000), 0.0, None, _crew())
        assert margin.revenue_source == "lot_size"
        assert margin.revenue_usd == 450.0

    def test_burn_fallback(self):
        """With no revenue estimate the score reflects how much of the day the job uses."""
        margin = compute_margin_score(_job(price_low_usd=None, price_high_usd=None), 10.0, None, _crew())
        assert margin.revenue_source == "none"
        assert margin.revenue_usd is None
        assert margin.margin_score == 86.98

    def test_score_clamped(self):
        margin = compute_margin_score(_job(price_low_usd=5.0, price_high_usd=5.0), 120.0, None, _crew(member_count=4))
        assert margin.margin_score == 0.0


class TestMarginRisk:
    def test_levels(self):
        assert margin_risk_for(_job(labor_low_minutes=60, labor_high_minutes=60)) == "low"
        assert margin_risk_for(_job(labor_low_minutes=45, labor_high_minutes=60)) == "medium"
        assert margin_risk_for(_job(labor_low_minutes=30, labor_high_minutes=90)) == "high"


class TestFeasibility:
    def test_empty_day(self):
        result = evaluate_feasibility(_job(), _crew(), MONDAY, None, travel_minutes=10)
        assert result.feasible is True
        assert result.required_minutes == 79
        assert result.proposed_start_minute == 420
        assert result.proposed_end_minute == 499
        assert result.remaining_capacity_minutes == 401

    def test_appends_after_last_stop(self):
        result = evaluate_feasibility(_job(), _crew(), MONDAY, _load((480, 300)), travel_minutes=10)
        assert result.feasible is True
        assert result.existing_load_minutes == 300
        assert result.proposed_start_minute == 780
        assert result.remaining_capacity_minutes == 101

    def test_capacity_exceeded(self):
        result = evaluate_feasibility(_job(), _crew(), MONDAY, _load((420, 450)), travel_minutes=10)
        assert result.feasible is False
        assert result.reasons == ["capacity_exceeded:need_79min_have_30min"]

    def test_past_end_of_window(self):
        """Enough capacity, but the job would run past 17:00."""
        result = evaluate_feasibility(_job(), _crew(), MONDAY, _load((900, 60)), travel_minutes=10)
        assert result.reasons == ["outside_availability_window"]

    def test_default_week_has_no_weekend(self):
        saturday = date(2026, 6, 6)
        result = evaluate_feasibility(_job(), _crew(), saturday)
        assert result.reasons == ["not_available_on_sat"]
        assert result.proposed_start_minute is None

    def test_time_off(self):
        crew = _crew(time_off=[TimeOffRange(start_date=MONDAY, end_date=date(2026, 6, 3))])
        result = evaluate_feasibility(_job(), crew, date(2026, 6, 3))
        assert result.reasons == ["time_off"]
        assert evaluate_feasibility(_job(), crew, date(2026, 6, 4)).feasible is True

    def test_buffer(self):
        assert required_minutes(_job(labor_high_minutes=60)) == 69
        assert required_minutes(_job(labor_high_minutes=60), travel_minutes=4.2) == 74


class TestWarnings:
    def test_warnings_never_block(self):
        job = _job(
            frequency="monthly",
            lot_area_sqft=50000,
            services=["leaf_cleanup"],
            labor_low_minutes=30,
            labor_high_minutes=90,
        )
        crew = _crew(daily_capacity_minutes=600)
        result = evaluate_feasibility(job, crew, MONDAY)
        assert result.feasible is True
        assert result.warnings == ["large_lot_monthly_service", "high_variance_service", "wide_labor_range"]
        assert risk_score_for(result.warnings) == 45.0

    def test_no_warnings(self):
        assert evaluate_feasibility(_job(), _crew(), MONDAY).warnings == []
        assert risk_score_for([]) == 0.0
