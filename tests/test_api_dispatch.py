"""
Tests for lawnops/api/dispatch.py - eligibility preview, simulate and the decision endpoints.
Endpoints are called directly with the authenticated user passed in.
"""
import uuid

import pytest

from factories import MONDAY, OTHER_BUSINESS_ID, add_business, add_crew, add_job, add_user, add_zone
from lawnops.api.dispatch import approve, eligible_crews, propose_decision, read_decision, reject, simulate
from lawnops.errors import AuthorizationError, NotFoundError, StateConflictError
from lawnops.schemas.api_responses import CreateDecisionRequest, RejectDecisionRequest, SimulateRequest


async def _setup(db):
    await add_business(db)
    owner = await add_user(db, role="owner")
    zone = await add_zone(db)
    await add_crew(db, name="Mow Crew", zone=zone)
    await add_crew(db, name="Irrigation Crew", skills=["irrigation_install"], zone=zone)
    job = await add_job(db)
    return owner, job


async def _proposed(db):
    owner, job = await _setup(db)
    result = await simulate(str(job.id), SimulateRequest(start_date=MONDAY), user=owner, db=db)
    decision = await propose_decision(
        CreateDecisionRequest(job_request_id=str(job.id), simulation_id=result.simulations[0].simulation_id),
        user=owner,
        db=db,
    )
    return owner, job, decision


class TestEligibleCrews:
    async def test_split_by_eligibility(self, db):
        owner, job = await _setup(db)

        response = await eligible_crews(str(job.id), user=owner, db=db)

        assert response["job_request_id"] == str(job.id)
        assert response["thresholds"] == {"skill_match_min_pct": 100.0, "equipment_match_min_pct": 100.0}
        assert [c["crew_name"] for c in response["eligible_crews"]] == ["Mow Crew"]
        excluded = response["excluded_crews"][0]
        assert excluded["crew_name"] == "Irrigation Crew"
        assert excluded["missing_skills"] == ["mowing"]

    async def test_job_of_another_business(self, db):
        await add_business(db, business_id=OTHER_BUSINESS_ID, sms_phone="+15125550199")
        owner, _ = await _setup(db)
        foreign = await add_job(db, business_id=OTHER_BUSINESS_ID)

        with pytest.raises(NotFoundError):
            await eligible_crews(str(foreign.id), user=owner, db=db)


class TestSimulate:
    async def test_overrides_applied(self, db):
        owner, job = await _setup(db)

        result = await simulate(
            str(job.id), SimulateRequest(start_date=MONDAY, date_range_days=3, return_top_n=2), user=owner, db=db,
        )

        assert result.dates_considered[0] == MONDAY
        assert len(result.dates_considered) == 3
        assert len(result.simulations) == 2
        assert result.candidates_generated == 3

    async def test_without_payload(self, db):
        owner, job = await _setup(db)
        result = await simulate(str(job.id), None, user=owner, db=db)
        assert len(result.dates_considered) == 7
        assert result.simulations


class TestDecisionEndpoints:
    async def test_propose_and_read(self, db):
        owner, job, decision = await _proposed(db)

        assert decision.status == "pending_approval"
        assert decision.job_request_id == str(job.id)
        assert decision.created_by_user_id == str(owner.id)
        assert decision.reasoning["selected"]["rank"] == 1

        fetched = await read_decision(decision.decision_id, user=owner, db=db)
        assert fetched.decision_id == decision.decision_id

    async def test_read_other_business(self, db):
        _, _, decision = await _proposed(db)
        await add_business(db, business_id=OTHER_BUSINESS_ID, sms_phone="+15125550199")
        outsider = await add_user(db, business_id=OTHER_BUSINESS_ID)

        with pytest.raises(NotFoundError):
            await read_decision(decision.decision_id, user=outsider, db=db)

    async def test_owner_approves(self, db):
        owner, job, decision = await _proposed(db)

        approved = await approve(decision.decision_id, user=owner, db=db)

        assert approved.status == "approved"
        assert approved.approved_by_user_id == str(owner.id)
        assert job.status == "assigned"

    async def test_crew_lead_cannot_approve_by_default(self, db):
        _, _, decision = await _proposed(db)
        lead = await add_user(db, role="crew_lead")

        with pytest.raises(AuthorizationError):
            await approve(decision.decision_id, user=lead, db=db)

    async def test_reject_with_reason(self, db):
        owner, job, decision = await _proposed(db)

        rejected = await reject(decision.decision_id, RejectDecisionRequest(reason="Wrong crew"), user=owner, db=db)

        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "Wrong crew"
        assert job.status == "needs_resimulation"

    async def test_approve_after_reject(self, db):
        owner, _, decision = await _proposed(db)
        await reject(decision.decision_id, None, user=owner, db=db)

        with pytest.raises(StateConflictError) as exc:
            await approve(decision.decision_id, user=owner, db=db)
        assert exc.value.current_status == "rejected"

    async def test_unknown_decision(self, db):
        owner, _ = await _setup(db)
        with pytest.raises(NotFoundError):
            await read_decision(str(uuid.uuid4()), user=owner, db=db)
