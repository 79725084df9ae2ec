"""
Dispatch endpoints - eligibility preview, simulation runs and assignment decisions.
All scoped to the authenticated operator's business.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.agents.eligibility import evaluate_crews
from lawnops.agents.orchestrator import (
    ApprovalConfig,
    approve_decision,
    create_decision,
    get_decision,
    reject_decision,
)
from lawnops.agents.simulation import run_simulations
from lawnops.api.auth import get_current_user
from lawnops.config import get_settings
from lawnops.database import get_db
from lawnops.models.user import User
from lawnops.schemas.api_responses import (
    CreateDecisionRequest,
    DecisionResponse,
    RejectDecisionRequest,
    SimulateRequest,
)
from lawnops.schemas.simulation import SimulationConfig, SimulationResult
from lawnops.services.crew_repository import get_job_request, job_to_spec, load_crew_profiles

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["dispatch"])


@router.get("/jobs/{job_id}/eligible-crews")
async def eligible_crews(
    job_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every crew with its coverage numbers and exclusion reasons, for the job."""
    config = SimulationConfig.from_settings(get_settings())
    job = await get_job_request(db, user.business_id, job_id)
    crews = await load_crew_profiles(db, user.business_id)
    evaluations = evaluate_crews(job_to_spec(job), crews, config.thresholds)
    return {
        "job_request_id": str(job.id),
        "thresholds": config.thresholds.model_dump(),
        "eligible_crews": [e.model_dump() for e in evaluations if e.eligible],
        "excluded_crews": [e.model_dump() for e in evaluations if not e.eligible],
    }


@router.post("/jobs/{job_id}/simulate", response_model=SimulationResult)
async def simulate(
    job_id: str,
    payload: SimulateRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    overrides = payload.model_dump(exclude_none=True) if payload else {}
    config = SimulationConfig.from_settings(get_settings(), **overrides)
    return await run_simulations(db, user.business_id, job_id, config)


@router.post("/decisions", response_model=DecisionResponse, status_code=201)
async def propose_decision(
    payload: CreateDecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    decision = await create_decision(
        db, user.business_id, payload.job_request_id, payload.simulation_id, user.id,
    )
    return DecisionResponse.from_row(decision)


@router.get("/decisions/{decision_id}", response_model=DecisionResponse)
async def read_decision(
    decision_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return DecisionResponse.from_row(await get_decision(db, user.business_id, decision_id))


@router.post("/decisions/{decision_id}/approve", response_model=DecisionResponse)
async def approve(
    decision_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    decision = await approve_decision(db, decision_id, user.id, ApprovalConfig.from_settings())
    return DecisionResponse.from_row(decision)


@router.post("/decisions/{decision_id}/reject", response_model=DecisionResponse)
async def reject(
    decision_id: str,
    payload: RejectDecisionRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    decision = await reject_decision(
        db, decision_id, user.id, ApprovalConfig.from_settings(),
        reason=payload.reason if payload else None,
    )
    return DecisionResponse.from_row(decision)
