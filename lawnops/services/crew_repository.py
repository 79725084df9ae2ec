"""
Crew repository - loads roster rows and turns them into the value types the
dispatch engine scores. Everything the pure ranking core needs is read here
in a handful of queries; the core itself never touches the session.
"""
import logging
import uuid
from collections import defaultdict
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.errors import NotFoundError
from lawnops.models.crew import Crew
from lawnops.models.job_request import JobRequest
from lawnops.models.schedule_item import ScheduleItem
from lawnops.schemas.dispatch import (
    CrewProfile,
    DayLoad,
    DayWindow,
    JobSpec,
    ScheduledStop,
    TimeOffRange,
    ZoneSpec,
)
from lawnops.services.session_store import to_uuid

logger = logging.getLogger(__name__)


def crew_to_profile(crew: Crew) -> CrewProfile:
    availability = {}
    for day, window in (crew.availability or {}).items():
        if isinstance(window, dict) and window.get("start") and window.get("end"):
            availability[day.lower()[:3]] = DayWindow(start=window["start"], end=window["end"])

    zones = [
        ZoneSpec(
            zone_id=a.zone.id,
            name=a.zone.name,
            min_lat=a.zone.min_lat,
            max_lat=a.zone.max_lat,
            min_lng=a.zone.min_lng,
            max_lng=a.zone.max_lng,
            center_lat=a.zone.center_lat,
            center_lng=a.zone.center_lng,
            radius_miles=a.zone.radius_miles,
        )
        for a in crew.zone_assignments
        if a.zone is not None and a.zone.is_active
    ]

    return CrewProfile(
        crew_id=crew.id,
        name=crew.name,
        skills=list(crew.skills or []),
        equipment=list(crew.equipment or []),
        member_count=crew.member_count or 1,
        home_base_lat=crew.home_base_lat,
        home_base_lng=crew.home_base_lng,
        service_radius_miles=crew.service_radius_miles or 0.0,
        daily_capacity_minutes=crew.daily_capacity_minutes or 480,
        labor_cost_per_hour=crew.labor_cost_per_hour,
        availability=availability,
        zones=zones,
        time_off=[
            TimeOffRange(start_date=t.start_date, end_date=t.end_date, reason=t.reason)
            for t in crew.time_off
        ],
        is_active=bool(crew.is_active),
    )


def job_to_spec(job: JobRequest) -> JobSpec:
    return JobSpec(
        job_id=str(job.id),
        business_id=str(job.business_id),
        lat=job.lat,
        lng=job.lng,
        zip_code=job.zip_code,
        services=list(job.services or []),
        frequency=job.frequency,
        required_skills=list(job.required_skills or []),
        required_equipment=list(job.required_equipment or []),
        crew_size_min=job.crew_size_min or 1,
        labor_low_minutes=job.labor_low_minutes or 60,
        labor_high_minutes=job.labor_high_minutes or job.labor_low_minutes or 60,
        lot_area_sqft=job.lot_area_sqft,
        price_low_usd=job.price_low_usd,
        price_high_usd=job.price_high_usd,
        preferred_date=job.preferred_date,
    )


async def get_job_request(db: AsyncSession, business_id, job_request_id) -> JobRequest:
    """Load a job scoped to the tenant. A job from another business is reported as missing."""
    job = await db.get(JobRequest, to_uuid(job_request_id, "job_request_id"))
    if job is None or job.business_id != to_uuid(business_id, "business_id"):
        raise NotFoundError(f"Job request {job_request_id} not found", code="job_not_found")
    return job


async def list_crews(db: AsyncSession, business_id, active_only: bool = False) -> list[Crew]:
    query = select(Crew).where(Crew.business_id == to_uuid(business_id, "business_id"))
    if active_only:
        query = query.where(Crew.is_active == True)  # noqa: E712
    result = await db.execute(query.order_by(Crew.id))
    return list(result.scalars().all())


async def load_crew_profiles(db: AsyncSession, business_id) -> list[CrewProfile]:
    """All crews of the business, inactive ones included so they show up as excluded."""
    return [crew_to_profile(c) for c in await list_crews(db, business_id)]


async def load_day_loads(
    db: AsyncSession,
    crew_ids: list[int],
    start: date,
    end: date,
    exclude_job_id: Optional[uuid.UUID] = None,
) -> dict[tuple[int, date], DayLoad]:
    """
    Booked work per (crew, date) for start <= date <= end.
    Cancelled items are ignored; so is the job being simulated, if it was
    already on someone's schedule.
    """
    if not crew_ids:
        return {}
    query = select(ScheduleItem).where(
        ScheduleItem.crew_id.in_(crew_ids),
        ScheduleItem.scheduled_date >= start,
        ScheduleItem.scheduled_date <= end,
        ScheduleItem.status != "cancelled",
    )
    if exclude_job_id is not None:
        query = query.where(
            (ScheduleItem.job_request_id.is_(None)) | (ScheduleItem.job_request_id != exclude_job_id)
        )
    result = await db.execute(query)

    stops = defaultdict(list)
    for item in result.scalars().all():
        stops[(item.crew_id, item.scheduled_date)].append(ScheduledStop(
            start_minute=item.start_minute,
            duration_minutes=item.duration_minutes,
            lat=item.lat,
            lng=item.lng,
        ))
    return {
        key: DayLoad(crew_id=key[0], day=key[1], stops=sorted(items, key=lambda s: s.start_minute))
        for key, items in stops.items()
    }
