"""
Seed a demo business with operators, crews, zones and a job to dispatch.

Idempotent: deletes the existing demo business first, then recreates it.
Prints a JWT for each operator so the dispatch endpoints can be called
right away.

Usage:
    python scripts/seed_demo_crews.py
"""
import asyncio
import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import delete, select

from lawnops.api.auth import create_access_token
from lawnops.database import async_session_factory
from lawnops.models import (
    AssignmentDecision,
    AssignmentSimulation,
    Business,
    ClickToCallToken,
    Crew,
    CrewTimeOff,
    CrewZoneAssignment,
    EventLog,
    HandoffTicket,
    JobRequest,
    ScheduleItem,
    ServiceZone,
    SmsEvent,
    SmsSession,
    User,
    WritebackRequest,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logger = logging.getLogger(__name__)

DEMO_BUSINESS_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
DEMO_SMS_PHONE = "+15125550100"
WEEKDAYS = {day: {"start": "07:00", "end": "17:00"} for day in ("mon", "tue", "wed", "thu", "fri")}

CREWS = [
    {
        "name": "North Mow Crew",
        "skills": ["mowing", "cleanup"],
        "equipment": ["mower_ztr", "trimmer", "blower", "trailer"],
        "member_count": 2,
        "home_base_lat": 30.3500,
        "home_base_lng": -97.7400,
    },
    {
        "name": "South Mow Crew",
        "skills": ["mowing", "aeration"],
        "equipment": ["mower_ztr", "trimmer", "blower", "aerator", "trailer"],
        "member_count": 3,
        "home_base_lat": 30.2000,
        "home_base_lng": -97.7700,
    },
    {
        "name": "Beds & Shrubs",
        "skills": ["shrub_trim", "mulch", "cleanup"],
        "equipment": ["hedge_trimmer", "blower", "trailer"],
        "member_count": 2,
        "home_base_lat": 30.2700,
        "home_base_lng": -97.7000,
    },
]


async def _clear(db) -> None:
    jobs = select(JobRequest.id).where(JobRequest.business_id == DEMO_BUSINESS_ID)
    crews = select(Crew.id).where(Crew.business_id == DEMO_BUSINESS_ID)
    sessions = select(SmsSession.session_id).where(SmsSession.business_id == DEMO_BUSINESS_ID)
    for stmt in (
        delete(WritebackRequest).where(WritebackRequest.business_id == DEMO_BUSINESS_ID),
        delete(AssignmentDecision).where(AssignmentDecision.business_id == DEMO_BUSINESS_ID),
        delete(AssignmentSimulation).where(AssignmentSimulation.business_id == DEMO_BUSINESS_ID),
        delete(ScheduleItem).where(ScheduleItem.business_id == DEMO_BUSINESS_ID),
        delete(JobRequest).where(JobRequest.id.in_(jobs)),
        delete(CrewTimeOff).where(CrewTimeOff.crew_id.in_(crews)),
        delete(CrewZoneAssignment).where(CrewZoneAssignment.crew_id.in_(crews)),
        delete(Crew).where(Crew.business_id == DEMO_BUSINESS_ID),
        delete(ServiceZone).where(ServiceZone.business_id == DEMO_BUSINESS_ID),
        delete(ClickToCallToken).where(ClickToCallToken.session_id.in_(sessions)),
        delete(HandoffTicket).where(HandoffTicket.business_id == DEMO_BUSINESS_ID),
        delete(SmsEvent).where(SmsEvent.business_id == DEMO_BUSINESS_ID),
        delete(SmsSession).where(SmsSession.business_id == DEMO_BUSINESS_ID),
        delete(EventLog).where(EventLog.business_id == DEMO_BUSINESS_ID),
        delete(User).where(User.business_id == DEMO_BUSINESS_ID),
        delete(Business).where(Business.id == DEMO_BUSINESS_ID),
    ):
        await db.execute(stmt)


async def seed() -> None:
    async with async_session_factory() as db:
        await _clear(db)

        db.add(Business(
            id=DEMO_BUSINESS_ID,
            name="Green Acres Lawn Care",
            sms_phone=DEMO_SMS_PHONE,
            call_phone="+15125550101",
            timezone="America/Chicago",
        ))
        await db.flush()

        users = [
            User(business_id=DEMO_BUSINESS_ID, email="owner@greenacres.example", name="Olivia Owner", role="owner"),
            User(business_id=DEMO_BUSINESS_ID, email="lead@greenacres.example", name="Carl Lead", role="crew_lead"),
            User(business_id=DEMO_BUSINESS_ID, email="staff@greenacres.example", name="Sam Staff", role="staff"),
        ]
        db.add_all(users)

        central = ServiceZone(
            business_id=DEMO_BUSINESS_ID, name="Central Austin",
            center_lat=30.2672, center_lng=-97.7431, radius_miles=12.0,
        )
        db.add(central)
        await db.flush()

        for spec in CREWS:
            crew = Crew(business_id=DEMO_BUSINESS_ID, availability=WEEKDAYS, service_radius_miles=20.0, **spec)
            db.add(crew)
            await db.flush()
            db.add(CrewZoneAssignment(crew_id=crew.id, zone_id=central.id, is_primary=True))

        db.add(JobRequest(
            business_id=DEMO_BUSINESS_ID,
            customer_phone="+15125559876",
            address="123 Oak St, Austin, TX 78701",
            zip_code="78701",
            lat=30.2750,
            lng=-97.7400,
            services=["mowing"],
            frequency="weekly",
            required_skills=["mowing"],
            required_equipment=["mower_ztr", "trimmer", "blower"],
            labor_low_minutes=45,
            labor_high_minutes=70,
            lot_area_sqft=15000,
            price_low_usd=45,
            price_high_usd=60,
            preferred_date=date.today() + timedelta(days=2),
            source="web",
        ))
        await db.commit()

        for user in users:
            logger.info("%-10s %s  token=%s", user.role, user.email, create_access_token(user))
        logger.info("Demo business %s seeded with %d crews", DEMO_BUSINESS_ID, len(CREWS))


if __name__ == "__main__":
    asyncio.run(seed())
