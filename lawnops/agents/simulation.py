"""
Simulation & Ranking Engine - scores every eligible (crew, date) pairing for a
job and persists the top-N as the job's current candidates.

Flow:
  1. Load job (tenant-scoped), roster and booked work for the date window
  2. Eligibility filter once
  3. For each eligible crew x date: feasibility, travel, margin
  4. Composite score, deterministic sort, top-N persisted in one transaction

The ranking core (rank_candidates) is pure: same inputs, same output, same
order. run_simulations only adds I/O around it.
"""
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.agents.eligibility import evaluate_crews
from lawnops.agents.scoring import (
    CostModel,
    compute_margin_score,
    evaluate_feasibility,
    get_crew_to_job_travel_minutes,
    risk_score_for,
)
from lawnops.errors import StateConflictError
from lawnops.models.business import Business
from lawnops.models.event_log import EventLog
from lawnops.models.job_request import JOB_TRANSITIONS, SIMULATABLE_STATUSES, JobRequest
from lawnops.models.simulation import AssignmentSimulation
from lawnops.schemas.dispatch import CrewProfile, DayLoad, EligibleCrew, JobSpec
from lawnops.schemas.simulation import (
    RISK_PENALTIES,
    SimulationCandidate,
    SimulationConfig,
    SimulationResult,
)
from lawnops.services.crew_repository import (
    get_job_request,
    job_to_spec,
    load_crew_profiles,
    load_day_loads,
)
from lawnops.services.geo import HaversineTravelEstimator, TravelEstimator
from lawnops.services.session_store import to_uuid
from lawnops.utils.metrics import Timer

logger = logging.getLogger(__name__)

COMPOSITE_BASE = 100.0
COMPOSITE_MIN = 0.0
COMPOSITE_MAX = 200.0


def candidate_dates(start: date, days: int) -> list[date]:
    """[start, start + days)"""
    return [start + timedelta(days=i) for i in range(days)]


def composite_score(travel_minutes: float, margin_score: float, margin_risk: str, config: SimulationConfig) -> float:
    score = (
        COMPOSITE_BASE
        - travel_minutes * config.travel_weight
        + margin_score * config.margin_weight
        - RISK_PENALTIES.get(margin_risk, 0.0)
    )
    return round(max(COMPOSITE_MIN, min(COMPOSITE_MAX, score)), 2)


def _sort_key(c: SimulationCandidate):
    return (-c.composite_score, -c.remaining_capacity_minutes, c.crew_id, c.proposed_date)


def _explanation(
    evaluation: EligibleCrew,
    travel_known: bool,
    margin,
    feasibility,
    risk_penalty: float,
) -> dict:
    notes = []
    if not travel_known:
        notes.append("travel_estimate_unavailable")
    if margin.revenue_source == "none":
        notes.append("no_revenue_estimate_score_from_burn")
    if margin.margin_risk != "low":
        notes.append(f"labor_range_ratio:{margin.labor_range_ratio}")
    return {
        "eligibility": {
            "skill_match_pct": evaluation.skill_match_pct,
            "equipment_match_pct": evaluation.equipment_match_pct,
            "in_zone": evaluation.in_zone,
            "matched_zone_id": evaluation.matched_zone_id,
            "distance_miles": evaluation.distance_miles,
        },
        "margin": margin.model_dump(mode="json"),
        "warnings": list(feasibility.warnings),
        "risk_penalty": risk_penalty,
        "notes": notes,
    }


def rank_candidates(
    job: JobSpec,
    crews: list[CrewProfile],
    loads: dict,
    dates: list[date],
    config: Optional[SimulationConfig] = None,
    estimator: Optional[TravelEstimator] = None,
) -> tuple[list[SimulationCandidate], list[EligibleCrew], list[EligibleCrew]]:
    """
    Score every feasible (eligible crew, date) pairing.

    loads maps (crew_id, date) -> DayLoad; missing keys mean an empty day.
    Returns (ranked candidates, eligible evaluations, excluded evaluations).
    Infeasible pairings are dropped. Ranks start at 1.
    """
    config = config or SimulationConfig()
    estimator = estimator or HaversineTravelEstimator(average_speed_mph=config.average_speed_mph)
    cost_model = CostModel(labor_cost_per_hour=config.labor_cost_per_hour_usd)

    thresholds = config.thresholds
    evaluations = evaluate_crews(job, crews, thresholds)
    eligible = [e for e in evaluations if e.eligible]
    excluded = [e for e in evaluations if not e.eligible]
    profiles = {c.crew_id: c for c in crews}

    candidates = []
    for evaluation in eligible:
        crew = profiles[evaluation.crew_id]
        for day in sorted(dates):
            day_load = loads.get((crew.crew_id, day)) or DayLoad(crew_id=crew.crew_id, day=day)
            travel = get_crew_to_job_travel_minutes(crew, job, day_load.last_stop, estimator)
            travel_minutes = travel if travel is not None else config.unknown_travel_minutes

            feasibility = evaluate_feasibility(job, crew, day, day_load, travel_minutes)
            if not feasibility.feasible:
                continue

            margin = compute_margin_score(job, travel_minutes, None, crew, cost_model)
            penalty = RISK_PENALTIES.get(margin.margin_risk, 0.0)
            candidates.append(SimulationCandidate(
                crew_id=crew.crew_id,
                crew_name=crew.name,
                proposed_date=day,
                proposed_start_minute=feasibility.proposed_start_minute,
                travel_minutes=round(travel_minutes, 2),
                margin_score=margin.margin_score,
                margin_risk=margin.margin_risk,
                risk_score=risk_score_for(feasibility.warnings),
                composite_score=composite_score(travel_minutes, margin.margin_score, margin.margin_risk, config),
                remaining_capacity_minutes=feasibility.remaining_capacity_minutes,
                feasibility=feasibility,
                explanation={
                    **_explanation(evaluation, travel is not None, margin, feasibility, penalty),
                    "thresholds": thresholds.model_dump(),
                },
            ))

    candidates.sort(key=_sort_key)
    for rank, candidate in enumerate(candidates, start=1):
        candidate.rank = rank
    return candidates, eligible, excluded


async def _retire_current(db: AsyncSession, job_id) -> int:
    """Mark the job's current candidates superseded. Returns how many were retired."""
    retired = await db.execute(
        update(AssignmentSimulation)
        .where(
            AssignmentSimulation.job_request_id == job_id,
            AssignmentSimulation.is_current == True,  # noqa: E712
        )
        .values(is_current=False)
    )
    return retired.rowcount or 0


async def _record_empty_run(
    db: AsyncSession,
    business_uuid: uuid.UUID,
    job: JobRequest,
    eligible: list[EligibleCrew],
    excluded: list[EligibleCrew],
    timer: Timer,
) -> None:
    """
    A run with no candidates still supersedes the previous one: its rows stop
    being current and a simulated job goes back to needs_resimulation, so an
    old candidate can no longer be chosen.
    """
    try:
        retired = await _retire_current(db, job.id)
        if job.status == "simulated":
            job.status = "needs_resimulation"

        db.add(EventLog(
            business_id=business_uuid,
            job_request_id=job.id,
            action="simulation_no_candidates",
            duration_ms=timer.stop(),
            message=f"No candidates, {retired} previous candidates retired",
            data={
                "eligible_crews": [e.crew_id for e in eligible],
                "excluded_crews": {str(e.crew_id): e.exclusion_reasons for e in excluded},
                "retired": retired,
            },
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Simulation for job %s: no candidates (%d eligible, %d excluded, %d retired)",
        str(job.id)[:8], len(eligible), len(excluded), retired,
        extra={"business_id": str(business_uuid)},
    )


def _business_today(business: Optional[Business]) -> date:
    tz_name = business.timezone if business is not None and business.timezone else "UTC"
    try:
        return datetime.now(ZoneInfo(tz_name)).date()
    except (KeyError, ValueError):
        logger.warning("Unknown business timezone %r, using UTC", tz_name)
        return datetime.now(timezone.utc).date()


async def run_simulations(
    db: AsyncSession,
    business_id,
    job_request_id,
    config: Optional[SimulationConfig] = None,
    estimator: Optional[TravelEstimator] = None,
) -> SimulationResult:
    """
    Rank crews for a job and persist the top persist_top_n as its current candidates.

    Raises NotFoundError when the job is not this tenant's, StateConflictError
    when the job is already decided or assigned. No eligible crew (or no
    feasible date) is not an error: the result is empty, the previous
    candidates are retired and a simulated job moves to needs_resimulation.
    """
    timer = Timer().start()
    config = config or SimulationConfig()
    business_uuid = to_uuid(business_id, "business_id")

    job = await get_job_request(db, business_uuid, job_request_id)
    if job.status not in SIMULATABLE_STATUSES or "simulated" not in JOB_TRANSITIONS.get(job.status, []):
        raise StateConflictError(
            f"Job request {str(job.id)[:8]} cannot be simulated in status {job.status}",
            current_status=job.status,
        )

    start = config.start_date or _business_today(await db.get(Business, business_uuid))
    dates = candidate_dates(start, config.date_range_days)

    job_spec = job_to_spec(job)
    crews = await load_crew_profiles(db, business_uuid)
    loads = await load_day_loads(db, [c.crew_id for c in crews], dates[0], dates[-1], exclude_job_id=job.id)

    candidates, eligible, excluded = rank_candidates(job_spec, crews, loads, dates, config, estimator)

    result = SimulationResult(
        job_request_id=str(job.id),
        eligible_crews=eligible,
        excluded_crews=excluded,
        thresholds_used=config.thresholds,
        dates_considered=dates,
        candidates_generated=len(candidates),
    )

    if not candidates:
        await _record_empty_run(db, business_uuid, job, eligible, excluded, timer)
        return result

    run_id = uuid.uuid4()
    to_persist = candidates[:config.persist_top_n]

    try:
        await _retire_current(db, job.id)

        for candidate in to_persist:
            row = AssignmentSimulation(
                business_id=business_uuid,
                job_request_id=job.id,
                crew_id=candidate.crew_id,
                simulation_run_id=run_id,
                rank=candidate.rank,
                proposed_date=candidate.proposed_date,
                proposed_start_minute=candidate.proposed_start_minute,
                travel_minutes=candidate.travel_minutes,
                margin_score=candidate.margin_score,
                margin_risk=candidate.margin_risk,
                risk_score=candidate.risk_score,
                composite_score=candidate.composite_score,
                remaining_capacity_minutes=candidate.remaining_capacity_minutes,
                feasibility=candidate.feasibility.model_dump(mode="json"),
                explanation=candidate.explanation,
                is_current=True,
            )
            db.add(row)
            await db.flush()
            candidate.simulation_id = str(row.id)

        job.status = "simulated"

        duration_ms = timer.stop()
        db.add(EventLog(
            business_id=business_uuid,
            job_request_id=job.id,
            action="simulation_run",
            duration_ms=duration_ms,
            message=f"{len(candidates)} candidates, {len(to_persist)} persisted",
            data={
                "simulation_run_id": str(run_id),
                "eligible_crews": [e.crew_id for e in eligible],
                "excluded_crews": {str(e.crew_id): e.exclusion_reasons for e in excluded},
                "top_crew_id": to_persist[0].crew_id,
                "top_score": to_persist[0].composite_score,
            },
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    result.simulation_run_id = str(run_id)
    result.candidates_persisted = len(to_persist)
    result.simulations = to_persist[:config.return_top_n]

    logger.info(
        "Simulation for job %s: %d candidates, top crew %d score %.2f (%dms)",
        str(job.id)[:8], len(candidates), to_persist[0].crew_id,
        to_persist[0].composite_score, duration_ms,
        extra={"business_id": str(business_uuid), "simulation_run_id": str(run_id)},
    )
    return result
