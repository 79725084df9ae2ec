"""
Decision & Approval Orchestrator - turns a chosen simulation candidate into an
auditable assignment decision and gates it behind a human approval.

Decision lifecycle:
  pending_approval → approved   (job → assigned, write-back queued)
  pending_approval → rejected   (job → needs_resimulation)

Roles:
  propose          owner, admin, crew_lead
  approve/reject   owner, admin (+ crew_lead when allow_crew_lead_approve)

Single writer: approve/reject are compare-and-set UPDATEs guarded on
status = 'pending_approval'. A losing caller gets StateConflictError and
nothing it wrote survives. The write-back to the external scheduler is only
queued here (writeback_requests); the writeback_sync worker sends it.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.config import get_settings
from lawnops.errors import AuthorizationError, NotFoundError, StateConflictError
from lawnops.models.business import Business
from lawnops.models.decision import AssignmentDecision
from lawnops.models.event_log import EventLog
from lawnops.models.job_request import JobRequest
from lawnops.models.schedule_item import ScheduleItem
from lawnops.models.simulation import AssignmentSimulation
from lawnops.models.user import User
from lawnops.models.writeback_request import WritebackRequest
from lawnops.services.crew_repository import get_job_request
from lawnops.services.session_store import to_uuid

logger = logging.getLogger(__name__)

PROPOSE_ROLES = ("owner", "admin", "crew_lead")
APPROVE_ROLES = ("owner", "admin")
MAX_ALTERNATIVES = 5


@dataclass
class ApprovalConfig:
    allow_crew_lead_approve: bool = False

    @classmethod
    def from_settings(cls, settings=None) -> "ApprovalConfig":
        settings = settings or get_settings()
        return cls(allow_crew_lead_approve=settings.allow_crew_lead_approve)


def can_propose(role: str) -> bool:
    return role in PROPOSE_ROLES


def can_approve(role: str, config: Optional[ApprovalConfig] = None) -> bool:
    config = config or ApprovalConfig()
    if role in APPROVE_ROLES:
        return True
    return role == "crew_lead" and config.allow_crew_lead_approve


async def _load_user(db: AsyncSession, user_id, business_id=None) -> User:
    user = await db.get(User, to_uuid(user_id, "user_id"))
    if user is None or not user.is_active:
        raise AuthorizationError("Unknown or inactive user", code="unknown_user")
    if business_id is not None and user.business_id != to_uuid(business_id, "business_id"):
        raise AuthorizationError("User does not belong to this business", code="wrong_tenant")
    return user


async def _load_decision(db: AsyncSession, decision_id, business_id=None) -> AssignmentDecision:
    decision = (await db.execute(
        select(AssignmentDecision)
        .where(AssignmentDecision.id == to_uuid(decision_id, "decision_id"))
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if decision is None:
        raise NotFoundError(f"Decision {decision_id} not found", code="decision_not_found")
    if business_id is not None and decision.business_id != to_uuid(business_id, "business_id"):
        raise NotFoundError(f"Decision {decision_id} not found", code="decision_not_found")
    return decision


def _job_snapshot(job: JobRequest) -> dict:
    return {
        "job_request_id": str(job.id),
        "address": job.address,
        "zip_code": job.zip_code,
        "lat": job.lat,
        "lng": job.lng,
        "services": list(job.services or []),
        "frequency": job.frequency,
        "required_skills": list(job.required_skills or []),
        "required_equipment": list(job.required_equipment or []),
        "crew_size_min": job.crew_size_min,
        "labor_low_minutes": job.labor_low_minutes,
        "labor_high_minutes": job.labor_high_minutes,
        "price_low_usd": job.price_low_usd,
        "price_high_usd": job.price_high_usd,
        "preferred_date": job.preferred_date.isoformat() if job.preferred_date else None,
    }


def _rationale(selected: AssignmentSimulation) -> str:
    parts = [
        f"Crew {selected.crew_id} ranked #{selected.rank} for {selected.proposed_date.isoformat()}",
        f"composite score {selected.composite_score:.2f}",
        f"travel {selected.travel_minutes:.0f} min",
        f"margin score {selected.margin_score:.0f} ({selected.margin_risk} risk)",
        f"{selected.remaining_capacity_minutes} min capacity left",
    ]
    return ", ".join(parts)


def build_reasoning(
    job: JobRequest,
    selected: AssignmentSimulation,
    alternatives: list[AssignmentSimulation],
    user: User,
    now: datetime,
) -> dict:
    """Snapshot of why this candidate was chosen. Frozen on the decision row."""
    explanation = dict(selected.explanation or {})
    return {
        "selected": {
            "simulation_id": str(selected.id),
            "simulation_run_id": str(selected.simulation_run_id),
            "crew_id": selected.crew_id,
            "proposed_date": selected.proposed_date.isoformat(),
            "proposed_start_minute": selected.proposed_start_minute,
            "rank": selected.rank,
        },
        "scores": {
            "composite_score": selected.composite_score,
            "travel_minutes": selected.travel_minutes,
            "margin_score": selected.margin_score,
            "margin_risk": selected.margin_risk,
            "risk_score": selected.risk_score,
            "remaining_capacity_minutes": selected.remaining_capacity_minutes,
        },
        "feasibility": dict(selected.feasibility or {}),
        "explanation": explanation,
        "rationale": _rationale(selected),
        "alternatives_considered": [
            {
                "simulation_id": str(alt.id),
                "crew_id": alt.crew_id,
                "proposed_date": alt.proposed_date.isoformat(),
                "rank": alt.rank,
                "composite_score": alt.composite_score,
            }
            for alt in alternatives[:MAX_ALTERNATIVES]
        ],
        "thresholds": explanation.get("thresholds"),
        "job": _job_snapshot(job),
        "created_by": {"user_id": str(user.id), "role": user.role},
        "created_at": now.isoformat(),
    }


async def create_decision(
    db: AsyncSession,
    business_id,
    job_request_id,
    simulation_id,
    user_id,
) -> AssignmentDecision:
    """
    Record the choice of one current simulation candidate for a job.

    Raises AuthorizationError (role), NotFoundError (job or simulation missing
    for this tenant), StateConflictError (stale simulation, job already decided).
    """
    business_uuid = to_uuid(business_id, "business_id")
    user = await _load_user(db, user_id, business_uuid)
    if not can_propose(user.role):
        raise AuthorizationError(f"Role {user.role} cannot propose assignments", code="cannot_propose")

    job = await get_job_request(db, business_uuid, job_request_id)
    selected = await db.get(AssignmentSimulation, to_uuid(simulation_id, "simulation_id"))
    if selected is None or selected.job_request_id != job.id or selected.business_id != business_uuid:
        raise NotFoundError(f"Simulation {simulation_id} not found for this job", code="simulation_not_found")
    if not selected.is_current:
        raise StateConflictError(
            "Simulation is from a superseded run; re-simulate and choose again",
            code="stale_simulation",
        )
    if job.status != "simulated":
        raise StateConflictError(
            f"Job request {str(job.id)[:8]} is {job.status}, expected simulated",
            current_status=job.status,
        )

    alternatives = (await db.execute(
        select(AssignmentSimulation)
        .where(
            AssignmentSimulation.job_request_id == job.id,
            AssignmentSimulation.is_current == True,  # noqa: E712
            AssignmentSimulation.id != selected.id,
        )
        .order_by(AssignmentSimulation.rank)
    )).scalars().all()

    now = datetime.now(timezone.utc)
    reasoning = build_reasoning(job, selected, list(alternatives), user, now)

    try:
        claimed = await db.execute(
            update(JobRequest)
            .where(JobRequest.id == job.id, JobRequest.status == "simulated")
            .values(status="decided", updated_at=now)
        )
        if claimed.rowcount == 0:
            raise StateConflictError(
                f"Job request {str(job.id)[:8]} was decided concurrently",
                current_status="decided",
            )

        decision = AssignmentDecision(
            business_id=business_uuid,
            job_request_id=job.id,
            simulation_id=selected.id,
            created_by_user_id=user.id,
            reasoning_json=reasoning,
            status="pending_approval",
            created_at=now,
        )
        db.add(decision)
        await db.flush()

        db.add(EventLog(
            business_id=business_uuid,
            job_request_id=job.id,
            decision_id=decision.id,
            user_id=user.id,
            action="decision_created",
            message=reasoning["rationale"],
            data={"simulation_id": str(selected.id), "crew_id": selected.crew_id},
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Decision %s created for job %s by %s (crew %d on %s)",
        str(decision.id)[:8], str(job.id)[:8], user.role,
        selected.crew_id, selected.proposed_date.isoformat(),
        extra={"business_id": str(business_uuid)},
    )
    return decision


async def _deny(
    db: AsyncSession,
    decision: AssignmentDecision,
    user: User,
    action: str,
) -> None:
    """Audit a refused approval attempt. The decision itself is untouched."""
    db.add(EventLog(
        business_id=decision.business_id,
        job_request_id=decision.job_request_id,
        decision_id=decision.id,
        user_id=user.id,
        action=f"decision_{action}_denied",
        status="failure",
        message=f"Role {user.role} may not {action}",
    ))
    await db.commit()


async def _claim_pending(db: AsyncSession, decision_id: uuid.UUID, values: dict) -> None:
    result = await db.execute(
        update(AssignmentDecision)
        .where(
            AssignmentDecision.id == decision_id,
            AssignmentDecision.status == "pending_approval",
        )
        .values(**values)
    )
    if result.rowcount == 0:
        current = (await db.execute(
            select(AssignmentDecision.status).where(AssignmentDecision.id == decision_id)
        )).scalar_one_or_none()
        raise StateConflictError(
            f"Decision {str(decision_id)[:8]} is no longer pending approval",
            current_status=current,
        )


async def approve_decision(
    db: AsyncSession,
    decision_id,
    user_id,
    config: Optional[ApprovalConfig] = None,
) -> AssignmentDecision:
    """
    Approve a pending decision: job → assigned, crew schedule updated and a
    write-back request queued, all in one transaction.
    """
    config = config or ApprovalConfig.from_settings()
    user = await _load_user(db, user_id)
    decision = await _load_decision(db, decision_id, user.business_id)

    if not can_approve(user.role, config):
        await _deny(db, decision, user, "approve")
        raise AuthorizationError(f"Role {user.role} cannot approve assignments", code="cannot_approve")

    now = datetime.now(timezone.utc)
    try:
        await _claim_pending(db, decision.id, {
            "status": "approved",
            "approved_by_user_id": user.id,
            "approved_at": now,
        })

        selected = await db.get(AssignmentSimulation, decision.simulation_id)
        assigned = await db.execute(
            update(JobRequest)
            .where(JobRequest.id == decision.job_request_id, JobRequest.status == "decided")
            .values(
                status="assigned",
                assigned_crew_id=selected.crew_id,
                assigned_date=selected.proposed_date,
                updated_at=now,
            )
        )
        if assigned.rowcount == 0:
            raise StateConflictError(
                f"Job request {str(decision.job_request_id)[:8]} is no longer awaiting a decision",
                code="job_state_conflict",
            )

        job = await db.get(JobRequest, decision.job_request_id, populate_existing=True)
        feasibility = selected.feasibility or {}
        if selected.proposed_start_minute is not None:
            db.add(ScheduleItem(
                business_id=decision.business_id,
                crew_id=selected.crew_id,
                job_request_id=job.id,
                scheduled_date=selected.proposed_date,
                start_minute=selected.proposed_start_minute,
                duration_minutes=feasibility.get("required_minutes") or job.labor_high_minutes,
                lat=job.lat,
                lng=job.lng,
            ))

        business = await db.get(Business, decision.business_id)
        db.add(WritebackRequest(
            business_id=decision.business_id,
            decision_id=decision.id,
            job_request_id=job.id,
            jobber_account_id=business.jobber_account_id if business else None,
            external_job_id=job.external_job_id,
            payload={
                "crew_id": selected.crew_id,
                "scheduled_date": selected.proposed_date.isoformat(),
                "start_minute": selected.proposed_start_minute,
                "duration_minutes": feasibility.get("required_minutes"),
                "address": job.address,
                "services": list(job.services or []),
            },
            status="pending",
        ))

        db.add(EventLog(
            business_id=decision.business_id,
            job_request_id=job.id,
            decision_id=decision.id,
            user_id=user.id,
            action="decision_approved",
            message=f"Crew {selected.crew_id} assigned for {selected.proposed_date.isoformat()}",
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Decision %s approved by %s", str(decision.id)[:8], user.role,
        extra={"business_id": str(decision.business_id)},
    )
    return await _load_decision(db, decision.id)


async def reject_decision(
    db: AsyncSession,
    decision_id,
    user_id,
    config: Optional[ApprovalConfig] = None,
    reason: Optional[str] = None,
) -> AssignmentDecision:
    """Reject a pending decision. The job goes back for re-simulation; nothing is written back."""
    config = config or ApprovalConfig.from_settings()
    user = await _load_user(db, user_id)
    decision = await _load_decision(db, decision_id, user.business_id)

    if not can_approve(user.role, config):
        await _deny(db, decision, user, "reject")
        raise AuthorizationError(f"Role {user.role} cannot reject assignments", code="cannot_reject")

    now = datetime.now(timezone.utc)
    try:
        await _claim_pending(db, decision.id, {
            "status": "rejected",
            "rejected_by_user_id": user.id,
            "rejected_at": now,
            "rejection_reason": reason,
        })
        await db.execute(
            update(JobRequest)
            .where(JobRequest.id == decision.job_request_id, JobRequest.status == "decided")
            .values(status="needs_resimulation", updated_at=now)
        )
        db.add(EventLog(
            business_id=decision.business_id,
            job_request_id=decision.job_request_id,
            decision_id=decision.id,
            user_id=user.id,
            action="decision_rejected",
            message=reason,
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Decision %s rejected by %s", str(decision.id)[:8], user.role,
        extra={"business_id": str(decision.business_id)},
    )
    return await _load_decision(db, decision.id)


async def get_decision(db: AsyncSession, business_id, decision_id) -> AssignmentDecision:
    return await _load_decision(db, decision_id, business_id)
